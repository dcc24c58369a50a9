import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest
from web3.exceptions import TimeExhausted

from stableramp.core.errors import LedgerRpcError
from stableramp.ledger.client import LedgerClient, classify_rpc_exception, to_ledger_error


class FakeEth:
    def __init__(self, head=None, error=None):
        self.head = head
        self.error = error

    @property
    async def block_number(self):
        if self.error is not None:
            raise self.error
        return self.head


class FakeEndpoint:
    def __init__(self, head=None, error=None):
        self.eth = FakeEth(head, error)


def client_for(*endpoints):
    return LedgerClient([], endpoints=list(endpoints), timeout=1, default_decimals=6)


class TestClassifyRpcException:
    @pytest.mark.parametrize(
        "exc",
        [
            asyncio.TimeoutError(),
            TimeExhausted("receipt not found"),
            aiohttp.ClientConnectionError("connection refused"),
            Exception("503 Service Unavailable"),
            Exception("upstream request timed out"),
            Exception("502 Bad Gateway"),
        ],
    )
    def test_gateway_and_timeout_failures_are_transient(self, exc):
        assert classify_rpc_exception(exc) is True

    @pytest.mark.parametrize(
        "exc",
        [
            Exception("execution reverted"),
            ValueError("invalid address"),
            Exception("403 Forbidden"),
            Exception("execution reverted: 0x08c379a0000000000000000000000000000000000000000000000000000502503"),
            Exception("insufficient funds for transfer: balance 502000, required 503000"),
        ],
    )
    def test_everything_else_is_permanent(self, exc):
        assert classify_rpc_exception(exc) is False

    def test_error_code_marks_transient(self):
        exc = Exception("boom")
        exc.code = "SERVER_ERROR"
        assert classify_rpc_exception(exc) is True

    def test_to_ledger_error_wraps_with_operation(self):
        error = to_ledger_error(Exception("503 Service Unavailable"), "get_logs")
        assert isinstance(error, LedgerRpcError)
        assert error.transient is True
        assert error.operation == "get_logs"
        assert str(error) == "get_logs failed: 503 Service Unavailable"

    def test_to_ledger_error_keeps_classified_errors(self):
        original = LedgerRpcError("already wrapped", transient=True)
        assert to_ledger_error(original, "x") is original


class TestEndpointFallThrough:
    async def test_transient_failure_moves_to_next_endpoint(self):
        client = client_for(
            FakeEndpoint(error=Exception("503 Service Unavailable")),
            FakeEndpoint(head=42),
        )
        assert await client.get_block_number() == 42

    async def test_permanent_failure_is_raised_immediately(self):
        second = FakeEndpoint(head=42)
        client = client_for(FakeEndpoint(error=Exception("403 Forbidden")), second)

        with pytest.raises(LedgerRpcError) as exc_info:
            await client.get_block_number()

        assert exc_info.value.transient is False
        assert exc_info.value.operation == "get_block_number"

    async def test_last_transient_error_is_raised_when_all_fail(self):
        client = client_for(
            FakeEndpoint(error=Exception("502 Bad Gateway")),
            FakeEndpoint(error=Exception("request timed out")),
        )

        with pytest.raises(LedgerRpcError) as exc_info:
            await client.get_block_number()

        assert exc_info.value.transient is True
        assert "timed out" in str(exc_info.value)

    async def test_no_endpoints_is_a_permanent_error(self):
        client = client_for()
        with pytest.raises(LedgerRpcError) as exc_info:
            await client.get_block_number()
        assert exc_info.value.transient is False


class TestTokenDecimals:
    async def test_decimals_are_cached_per_token(self):
        client = client_for(FakeEndpoint())
        client._call = AsyncMock(return_value=18)

        assert await client.token_decimals("0xAAAA000000000000000000000000000000000001") == 18
        assert await client.token_decimals("0xaaaa000000000000000000000000000000000001") == 18
        assert client._call.await_count == 1

    async def test_failure_falls_back_to_default_without_caching(self):
        client = client_for(FakeEndpoint())
        client._call = AsyncMock(side_effect=[LedgerRpcError("decimals failed: 503", transient=True), 18])
        token = "0xaaaa000000000000000000000000000000000001"

        assert await client.token_decimals(token) == 6
        assert await client.token_decimals(token) == 18


def test_custodial_address_requires_key():
    with pytest.raises(LedgerRpcError):
        client_for().custodial_address


def test_custodial_address_is_lowercase():
    # well-known throwaway key
    key = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
    client = LedgerClient([], private_key=key, endpoints=[])
    assert client.custodial_address == client.custodial_address.lower()
    assert client.custodial_address.startswith("0x")
