# stableramp/domain/settlement/transfer.py
"""Custodial stablecoin payout used to settle a captured card payment."""
import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple, Union

from stableramp.core.config import settings
from stableramp.core.errors import (
    InsufficientBalanceError,
    OnChainTransferFailed,
    ReceiptTimeoutError,
    StableRampError,
    is_transient,
)
from stableramp.core.retry import call_with_retry
from stableramp.ledger.client import LedgerClient
from stableramp.ledger.units import format_units, to_raw_units

logger = logging.getLogger(__name__)

# seconds added per failed attempt: 2s, 4s, 6s
ATTEMPT_BACKOFF_SECONDS = 2


@dataclass
class TransferReceipt:
    tx_hash: str
    block_number: Optional[int]
    amount_raw: int
    decimals: int


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


async def wait_for_receipt(
    ledger: LedgerClient,
    tx_hash: str,
    timeout: Optional[float] = None,
    poll_interval: Optional[float] = None,
) -> Dict[str, Any]:
    """Poll until ``tx_hash`` is mined.

    Any failure here is a ReceiptTimeoutError carrying the hash: the
    transaction is already broadcast, so the caller must not send it again.
    """
    if timeout is None:
        timeout = settings.RECEIPT_TIMEOUT_SECONDS
    if poll_interval is None:
        poll_interval = settings.RECEIPT_POLL_INTERVAL_SECONDS

    deadline = time.monotonic() + timeout
    while True:
        try:
            receipt = await call_with_retry(
                lambda: ledger.get_transaction_receipt(tx_hash),
                label="get_transaction_receipt",
            )
        except StableRampError as exc:
            raise ReceiptTimeoutError(
                f"Receipt for {tx_hash} unavailable: {exc}", tx_hash=tx_hash
            ) from exc
        if receipt is not None:
            return receipt
        if time.monotonic() >= deadline:
            raise ReceiptTimeoutError(
                f"No receipt for {tx_hash} after {timeout}s", tx_hash=tx_hash
            )
        await asyncio.sleep(poll_interval)


async def _submit_once(
    ledger: LedgerClient,
    to_address: str,
    amount: Union[str, Decimal],
    token_address: str,
) -> Tuple[str, int, int]:
    decimals = await call_with_retry(lambda: ledger.token_decimals(token_address), label="decimals")
    amount_raw = to_raw_units(amount, decimals)

    custodial = ledger.custodial_address
    balance = await call_with_retry(
        lambda: ledger.balance_of(token_address, custodial), label="balance_of"
    )
    if balance < amount_raw:
        raise InsufficientBalanceError(
            "Insufficient balance in custodial wallet. "
            f"Required: {format_units(amount_raw, decimals)}, "
            f"Available: {format_units(balance, decimals)}"
        )

    tx_hash = await ledger.submit_transfer(token_address, to_address, amount_raw)
    return tx_hash, amount_raw, decimals


async def execute_custodial_transfer(
    ledger: LedgerClient,
    to_address: str,
    amount: Union[str, Decimal],
    token_address: str,
    max_attempts: Optional[int] = None,
) -> TransferReceipt:
    """Send ``amount`` (human units) of ``token_address`` from the custodial wallet.

    Attempts up to and including the broadcast are repeated, with a linearly
    growing pause, only for transient failures. Once a hash exists every
    failure (revert, missing receipt) is raised with that hash attached.
    """
    if max_attempts is None:
        max_attempts = settings.TRANSFER_MAX_ATTEMPTS
    max_attempts = max(1, max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            tx_hash, amount_raw, decimals = await _submit_once(ledger, to_address, amount, token_address)
        except StableRampError as exc:
            if not is_transient(exc) or attempt >= max_attempts:
                raise
            wait = attempt * ATTEMPT_BACKOFF_SECONDS
            logger.warning(
                f"Custodial transfer attempt {attempt}/{max_attempts} failed, retrying in {wait}s: {exc}"
            )
            await asyncio.sleep(wait)
            continue
        break

    receipt = await wait_for_receipt(ledger, tx_hash)
    if _as_int(receipt.get("status")) != 1:
        raise OnChainTransferFailed(f"Transfer {tx_hash} reverted on chain", tx_hash=tx_hash)

    result = TransferReceipt(
        tx_hash=tx_hash.lower(),
        block_number=_as_int(receipt.get("blockNumber")),
        amount_raw=amount_raw,
        decimals=decimals,
    )
    logger.info(
        f"Custodial transfer {result.tx_hash} confirmed in block {result.block_number} "
        f"({format_units(amount_raw, decimals)} to {to_address})"
    )
    return result
