"""
Async ledger JSON-RPC adapter.

- Ordered list of endpoints: a transient failure falls through to the next URL
- Every raw failure is converted to LedgerRpcError with its ``transient`` flag
  decided here, once
- Token reads (decimals, balances) and custodial transfer submission

Custodial writes are signed with OFFRAMP_PRIVATE_KEY.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import aiohttp
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TimeExhausted, TransactionNotFound

from stableramp.core.config import settings
from stableramp.core.errors import LedgerRpcError, StableRampError
from stableramp.ledger.events import ERC20_ABI, to_hex

logger = logging.getLogger(__name__)
T = TypeVar("T")

TRANSIENT_STATUS = {502, 503, 504}
# phrases only; bare status digits also occur in revert data and amounts
TRANSIENT_MARKERS = ("bad gateway", "service unavailable", "gateway timeout", "timeout", "timed out")


def classify_rpc_exception(exc: BaseException) -> bool:
    """Return True when ``exc`` looks like a gateway/timeout class transport failure."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, TimeExhausted)):
        return True
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status in TRANSIENT_STATUS
    if isinstance(exc, aiohttp.ClientConnectionError):
        return True
    if getattr(exc, "code", None) in ("SERVER_ERROR", "TIMEOUT"):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def to_ledger_error(exc: BaseException, operation: str) -> StableRampError:
    if isinstance(exc, StableRampError):
        return exc
    detail = str(exc) or type(exc).__name__
    return LedgerRpcError(
        f"{operation} failed: {detail}",
        transient=classify_rpc_exception(exc),
        operation=operation,
    )


class LedgerClient:
    """Thin async facade over one or more ledger JSON-RPC endpoints."""

    def __init__(
        self,
        rpc_urls: Sequence[str],
        private_key: Optional[str] = None,
        timeout: Optional[float] = None,
        default_decimals: Optional[int] = None,
        endpoints: Optional[List[AsyncWeb3]] = None,
    ):
        if endpoints is None:
            endpoints = [AsyncWeb3(AsyncHTTPProvider(url)) for url in rpc_urls or []]
        self._endpoints = endpoints
        self._account = Account.from_key(private_key) if private_key else None
        self.timeout = timeout if timeout is not None else settings.LEDGER_RPC_TIMEOUT_SECONDS
        self.default_decimals = (
            default_decimals if default_decimals is not None else settings.DEFAULT_TOKEN_DECIMALS
        )
        self._decimals: Dict[str, int] = {}

    @property
    def custodial_address(self) -> str:
        if self._account is None:
            raise LedgerRpcError("Offramp wallet not configured", operation="custodial_address")
        return self._account.address.lower()

    async def _call(self, operation: str, fn: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        if not self._endpoints:
            raise LedgerRpcError("LEDGER_RPC_URL (or LEDGER_RPC_URLS) is not configured", operation=operation)
        last_error: Optional[StableRampError] = None
        for index, w3 in enumerate(self._endpoints):
            try:
                return await asyncio.wait_for(fn(w3), timeout=self.timeout)
            except Exception as exc:
                error = to_ledger_error(exc, operation)
                if not error.transient:
                    raise error from exc
                last_error = error
                if index + 1 < len(self._endpoints):
                    logger.warning(f"{operation}: endpoint #{index + 1} unavailable, trying next: {error}")
        raise last_error

    def _token(self, w3: AsyncWeb3, token_address: str):
        return w3.eth.contract(address=AsyncWeb3.to_checksum_address(token_address), abi=ERC20_ABI)

    async def get_block_number(self) -> int:
        async def fn(w3):
            return int(await w3.eth.block_number)
        return await self._call("get_block_number", fn)

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: List[Optional[str]],
    ) -> List[Any]:
        params = {
            "address": AsyncWeb3.to_checksum_address(address),
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": topics,
        }

        async def fn(w3):
            return list(await w3.eth.get_logs(params))
        return await self._call("get_logs", fn)

    async def get_block_timestamp(self, block_number: int) -> Optional[int]:
        async def fn(w3):
            block = await w3.eth.get_block(block_number)
            return int(block["timestamp"]) if block else None
        return await self._call("get_block", fn)

    async def token_decimals(self, token_address: str) -> int:
        """Token decimals, cached per token; falls back to the default on failure."""
        key = token_address.lower()
        if key in self._decimals:
            return self._decimals[key]

        async def fn(w3):
            return int(await self._token(w3, key).functions.decimals().call())

        try:
            decimals = await self._call("decimals", fn)
        except StableRampError as exc:
            logger.warning(f"decimals({key}) unavailable, using {self.default_decimals}: {exc}")
            return self.default_decimals
        self._decimals[key] = decimals
        return decimals

    async def balance_of(self, token_address: str, owner: str) -> int:
        async def fn(w3):
            token = self._token(w3, token_address)
            return int(await token.functions.balanceOf(AsyncWeb3.to_checksum_address(owner)).call())
        return await self._call("balance_of", fn)

    async def submit_transfer(self, token_address: str, to_address: str, amount_raw: int) -> str:
        """Sign and broadcast ``transfer(to, amount)`` from the custodial wallet."""
        if self._account is None:
            raise LedgerRpcError("Offramp wallet not configured", operation="submit_transfer")
        account = self._account

        async def fn(w3):
            token = self._token(w3, token_address)
            tx = await token.functions.transfer(
                AsyncWeb3.to_checksum_address(to_address), amount_raw
            ).build_transaction({
                "from": account.address,
                "nonce": await w3.eth.get_transaction_count(account.address, "pending"),
                "chainId": await w3.eth.chain_id,
            })
            signed = account.sign_transaction(tx)
            return to_hex(await w3.eth.send_raw_transaction(signed.raw_transaction))

        tx_hash = await self._call("submit_transfer", fn)
        logger.info(f"submit_transfer token={token_address} to={to_address} amount={amount_raw} tx={tx_hash}")
        return tx_hash

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt as a plain dict, or None while the transaction is unmined."""
        async def fn(w3):
            try:
                receipt = await w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                return None
            return dict(receipt) if receipt else None
        return await self._call("get_transaction_receipt", fn)


_ledger: Optional[LedgerClient] = None


def get_ledger() -> LedgerClient:
    """Process-wide client built from settings on first use (FastAPI dependency)."""
    global _ledger
    if _ledger is None:
        _ledger = LedgerClient(settings.rpc_urls, private_key=settings.OFFRAMP_PRIVATE_KEY or None)
    return _ledger
