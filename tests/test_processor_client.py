from decimal import Decimal
from unittest.mock import patch

import aiohttp
import pytest

from stableramp.core.errors import ProcessorError
from stableramp.processor.client import StripeClient, flatten_form, to_minor_units


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self.body = body

    async def json(self, content_type=None):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.response

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


def patched_session(status, body):
    session = FakeSession(FakeResponse(status, body))
    return session, patch("stableramp.processor.client.aiohttp.ClientSession", return_value=session)


def test_flatten_form_nests_dicts_and_skips_none():
    pairs = flatten_form(
        {"amount": 1050, "metadata": {"wallet_address": "0xabc"}, "destination": None, "flags": {"on": True}}
    )
    assert pairs == [("amount", "1050"), ("metadata[wallet_address]", "0xabc"), ("flags[on]", "true")]


@pytest.mark.parametrize(
    "amount, expected",
    [(Decimal("10.50"), 1050), (Decimal("0.01"), 1), ("25", 2500), (Decimal("1.005"), 100)],
)
def test_to_minor_units(amount, expected):
    assert to_minor_units(amount) == expected


class TestStripeClient:
    async def test_missing_secret_key(self):
        with pytest.raises(ProcessorError):
            await StripeClient("").retrieve_payment_intent("pi_1")

    async def test_success_returns_body_and_sends_idempotency_key(self):
        session, patcher = patched_session(200, {"id": "po_1", "status": "pending"})
        with patcher:
            body = await StripeClient("sk_test", api_base="https://stripe.test/v1").create_payout(
                2500, "usd", destination="ba_1", idempotency_key="cashout-0x1"
            )

        assert body["id"] == "po_1"
        method, url, kwargs = session.calls[0]
        assert (method, url) == ("POST", "https://stripe.test/v1/payouts")
        assert kwargs["headers"]["Authorization"] == "Bearer sk_test"
        assert kwargs["headers"]["Idempotency-Key"] == "cashout-0x1"
        assert ("destination", "ba_1") in kwargs["data"]

    async def test_card_error_is_permanent(self):
        _, patcher = patched_session(402, {"error": {"message": "Your card was declined."}})
        with patcher:
            with pytest.raises(ProcessorError) as exc_info:
                await StripeClient("sk_test").retrieve_payment_intent("pi_1")

        assert exc_info.value.transient is False
        assert exc_info.value.status == 402
        assert "Your card was declined." in str(exc_info.value)

    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_rate_limit_and_server_errors_are_transient(self, status):
        _, patcher = patched_session(status, {})
        with patcher:
            with pytest.raises(ProcessorError) as exc_info:
                await StripeClient("sk_test").retrieve_payment_intent("pi_1")
        assert exc_info.value.transient is True

    async def test_connection_error_is_transient(self):
        with patch(
            "stableramp.processor.client.aiohttp.ClientSession",
            side_effect=aiohttp.ClientConnectionError("connection refused"),
        ):
            with pytest.raises(ProcessorError) as exc_info:
                await StripeClient("sk_test").retrieve_payment_intent("pi_1")
        assert exc_info.value.transient is True
