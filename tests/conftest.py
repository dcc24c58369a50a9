"""
Shared fixtures for the stableramp test suite.

- In-memory sqlite (aiosqlite + StaticPool) with the full schema per test
- FakeLedger: in-process stand-in for LedgerClient's coroutine surface
- FakeProcessor: records processor calls and returns canned objects
- http_client: httpx AsyncClient bound to the FastAPI app with dependencies overridden
"""
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio
from eth_abi import encode as abi_encode
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from web3 import Web3

from stableramp.core.errors import LedgerRpcError
from stableramp.db.base import Base, get_db, load_models
from stableramp.ledger.client import get_ledger
from stableramp.ledger.events import TRANSFER_TOPIC, TRANSFER_WITH_MEMO_TOPIC, topic_for_address
from stableramp.main import app
from stableramp.processor.client import get_processor

ALPHA = "0x20c0000000000000000000000000000000000001"
BETA = "0x20c0000000000000000000000000000000000002"
USER = "0xabc0000000000000000000000000000000000001"
OTHER = "0x1230000000000000000000000000000000000002"
WALLET = "0xdef0000000000000000000000000000000000003"
CUSTODIAL = "0xc0ffee0000000000000000000000000000000004"


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def make_transfer_log(
    token: str,
    sender: str,
    recipient: str,
    amount_raw: int,
    block_number: int,
    log_index: int = 0,
    tx: Optional[str] = None,
    memo: Optional[bytes] = None,
) -> Dict[str, Any]:
    """Raw log shaped like an eth_getLogs / receipt entry."""
    if memo is None:
        topic0 = TRANSFER_TOPIC
        data = abi_encode(["uint256"], [amount_raw])
    else:
        topic0 = TRANSFER_WITH_MEMO_TOPIC
        data = abi_encode(["uint256", "bytes32"], [amount_raw, memo.ljust(32, b"\0")])
    return {
        "address": Web3.to_checksum_address(token),
        "topics": [topic0, topic_for_address(sender), topic_for_address(recipient)],
        "data": Web3.to_hex(data),
        "transactionHash": tx or tx_hash(block_number * 1000 + log_index),
        "logIndex": log_index,
        "blockNumber": block_number,
    }


class FakeLedger:
    """Implements the LedgerClient methods the domain awaits."""

    def __init__(self, head: int = 0, decimals: int = 6):
        self.head = head
        self.decimals = decimals
        self.custodial_address = CUSTODIAL
        self.logs: List[Dict[str, Any]] = []
        self.timestamps: Dict[int, int] = {}
        self.balances: Dict[Tuple[str, str], int] = {}
        self.receipts: Dict[str, Optional[Dict[str, Any]]] = {}
        self.receipt_status = 1

        self.get_logs_calls: List[Tuple[str, int, int, List[Optional[str]]]] = []
        self.submitted: List[Tuple[str, str, int]] = []
        self.fail_get_logs_after: Optional[int] = None
        self.block_number_error: Optional[Exception] = None
        self.submit_errors: List[Exception] = []
        self.receipt_errors: List[Exception] = []

    def set_balance(self, token: str, owner: str, amount_raw: int):
        self.balances[(token.lower(), owner.lower())] = amount_raw

    async def get_block_number(self) -> int:
        if self.block_number_error is not None:
            raise self.block_number_error
        return self.head

    async def get_logs(self, address, from_block, to_block, topics):
        if self.fail_get_logs_after is not None and len(self.get_logs_calls) >= self.fail_get_logs_after:
            raise LedgerRpcError("get_logs failed: execution reverted", transient=False, operation="get_logs")
        self.get_logs_calls.append((address, from_block, to_block, topics))
        matched = []
        for log in self.logs:
            if log["address"].lower() != address.lower():
                continue
            if not from_block <= log["blockNumber"] <= to_block:
                continue
            if all(t is None or log["topics"][i] == t for i, t in enumerate(topics)):
                matched.append(log)
        return matched

    async def get_block_timestamp(self, block_number: int) -> Optional[int]:
        return self.timestamps.get(block_number, 1_700_000_000 + block_number * 12)

    async def token_decimals(self, token_address: str) -> int:
        return self.decimals

    async def balance_of(self, token_address: str, owner: str) -> int:
        return self.balances.get((token_address.lower(), owner.lower()), 0)

    async def submit_transfer(self, token_address: str, to_address: str, amount_raw: int) -> str:
        if self.submit_errors:
            raise self.submit_errors.pop(0)
        self.submitted.append((token_address, to_address, amount_raw))
        hash_ = tx_hash(0xF00 + len(self.submitted))
        self.receipts[hash_] = {
            "transactionHash": hash_,
            "status": self.receipt_status,
            "blockNumber": self.head + 1,
            "logs": [],
        }
        return hash_

    async def get_transaction_receipt(self, tx_hash_: str):
        if self.receipt_errors:
            raise self.receipt_errors.pop(0)
        return self.receipts.get(tx_hash_)


class FakeProcessor:
    def __init__(self):
        self.intents: Dict[str, Dict[str, Any]] = {}
        self.payouts: List[Dict[str, Any]] = []
        self.created_intents: List[Dict[str, Any]] = []
        self.payout_error: Optional[Exception] = None
        self.retrieve_error: Optional[Exception] = None

    async def create_payment_intent(self, amount_minor, currency, metadata, idempotency_key=None):
        intent_id = f"pi_test_{len(self.created_intents) + 1}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "amount": amount_minor,
            "currency": currency,
            "metadata": metadata,
            "status": "requires_payment_method",
        }
        self.created_intents.append(intent)
        self.intents[intent_id] = intent
        return intent

    async def retrieve_payment_intent(self, payment_intent_id):
        if self.retrieve_error is not None:
            raise self.retrieve_error
        return self.intents[payment_intent_id]

    async def create_payout(self, amount_minor, currency, destination=None, metadata=None, idempotency_key=None):
        if self.payout_error is not None:
            raise self.payout_error
        payout = {
            "id": f"po_test_{len(self.payouts) + 1}",
            "amount": amount_minor,
            "currency": currency,
            "destination": destination,
            "metadata": metadata or {},
            "idempotency_key": idempotency_key,
        }
        self.payouts.append(payout)
        return payout


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    load_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger():
    return FakeLedger(head=120)


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest_asyncio.fixture
async def http_client(session_factory, ledger, processor):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_processor] = lambda: processor
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
