"""
Transfer event codec.

Two event shapes are indexed on every stablecoin contract:

  Transfer(address indexed from, address indexed to, uint256 value)
  TransferWithMemo(address indexed from, address indexed to, uint256 value, bytes32 memo)

Both keep the parties in topics 1 and 2, so one set of topic filters covers
either direction for either event.
"""
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

TRANSFER = "Transfer"
TRANSFER_WITH_MEMO = "TransferWithMemo"

TRANSFER_TOPIC = Web3.to_hex(Web3.keccak(text="Transfer(address,address,uint256)"))
TRANSFER_WITH_MEMO_TOPIC = Web3.to_hex(
    Web3.keccak(text="TransferWithMemo(address,address,uint256,bytes32)")
)

_DATA_TYPES = {
    TRANSFER_TOPIC: (TRANSFER, ["uint256"]),
    TRANSFER_WITH_MEMO_TOPIC: (TRANSFER_WITH_MEMO, ["uint256", "bytes32"]),
}

ERC20_ABI = [
    {
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


@dataclass
class DecodedTransfer:
    token_address: str
    from_address: str
    to_address: str
    amount_raw: int
    memo: Optional[str]
    tx_hash: str
    log_index: int
    block_number: int
    event_name: str


def to_hex(value: Any) -> str:
    return Web3.to_hex(HexBytes(value)).lower()


def topic_for_address(address: str) -> str:
    """Left-pad an address to a 32-byte topic."""
    return "0x" + "0" * 24 + address.lower().replace("0x", "")


def _address_from_topic(topic: Any) -> str:
    return "0x" + HexBytes(topic)[-20:].hex().replace("0x", "").lower()


def transfer_queries(address: str) -> List[List[Optional[str]]]:
    """Topic filters for {Transfer, TransferWithMemo} x {to address, from address}."""
    user_topic = topic_for_address(address)
    return [
        [TRANSFER_TOPIC, None, user_topic],
        [TRANSFER_TOPIC, user_topic, None],
        [TRANSFER_WITH_MEMO_TOPIC, None, user_topic],
        [TRANSFER_WITH_MEMO_TOPIC, user_topic, None],
    ]


def decode_transfer_log(log: Mapping[str, Any]) -> Optional[DecodedTransfer]:
    """Decode one raw log, or return None if it is not a known transfer event."""
    try:
        topics = [to_hex(t) for t in log["topics"]]
        if len(topics) != 3 or topics[0] not in _DATA_TYPES:
            return None
        event_name, types = _DATA_TYPES[topics[0]]
        values = abi_decode(types, bytes(HexBytes(log["data"])))
        memo = to_hex(values[1]) if event_name == TRANSFER_WITH_MEMO else None
        return DecodedTransfer(
            token_address=to_hex(log["address"]),
            from_address=_address_from_topic(topics[1]),
            to_address=_address_from_topic(topics[2]),
            amount_raw=int(values[0]),
            memo=memo,
            tx_hash=to_hex(log["transactionHash"]),
            log_index=int(log["logIndex"]),
            block_number=int(log["blockNumber"]),
            event_name=event_name,
        )
    except (DecodingError, KeyError, TypeError, ValueError):
        return None
