# stableramp/processor/client.py
"""Minimal Stripe REST client for card payments and bank payouts.

Requests are form encoded (nested dicts become ``key[sub]=value``) and
authenticated with the secret key as a bearer token. Failures surface as
ProcessorError: 5xx, 429, connection errors and timeouts are transient,
other 4xx are permanent.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from stableramp.core.config import settings
from stableramp.core.errors import ProcessorError

logger = logging.getLogger(__name__)


def flatten_form(data: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(flatten_form(value, name))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


def to_minor_units(amount: Decimal) -> int:
    """Fiat amount in cents."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


class StripeClient:
    def __init__(
        self,
        secret_key: str,
        api_base: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.secret_key = secret_key
        self.api_base = (api_base or settings.STRIPE_API_BASE).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.STRIPE_TIMEOUT_SECONDS

    async def _request(
        self,
        method: str,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not self.secret_key:
            raise ProcessorError("STRIPE_SECRET_KEY is not configured")
        url = f"{self.api_base}{path}"
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            async with aiohttp.ClientSession() as session:
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                async with session.request(
                    method,
                    url,
                    headers=headers,
                    data=flatten_form(data) if data else None,
                    timeout=timeout,
                ) as response:
                    body = await response.json(content_type=None)
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            detail = str(exc) or type(exc).__name__
            logger.warning(f"Stripe {method} {path} network error: {detail}")
            raise ProcessorError(f"Stripe request failed: {detail}", transient=True) from exc

        if 200 <= status < 300:
            return body or {}

        error = (body or {}).get("error") or {}
        message = error.get("message") or f"HTTP {status}"
        transient = status >= 500 or status == 429
        logger.error(f"Stripe {method} {path} failed: {status} - {message}")
        raise ProcessorError(f"Stripe error: {message}", transient=transient, status=status)

    async def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/payment_intents",
            {
                "amount": amount_minor,
                "currency": currency,
                "automatic_payment_methods": {"enabled": True},
                "metadata": metadata,
            },
            idempotency_key=idempotency_key,
        )

    async def retrieve_payment_intent(self, payment_intent_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/payment_intents/{payment_intent_id}")

    async def create_payout(
        self,
        amount_minor: int,
        currency: str,
        destination: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "/payouts",
            {
                "amount": amount_minor,
                "currency": currency,
                "destination": destination,
                "metadata": metadata or {},
            },
            idempotency_key=idempotency_key,
        )


_processor: Optional[StripeClient] = None


def get_processor() -> StripeClient:
    global _processor
    if _processor is None:
        _processor = StripeClient(settings.STRIPE_SECRET_KEY)
    return _processor
