"""Exponential-backoff retry for single ledger calls.

Only errors flagged ``transient`` are retried. Anything else (bad call data,
insufficient funds, reverted contract call) is raised on the first failure,
since repeating it cannot succeed and may duplicate side effects.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from stableramp.core.config import settings
from stableramp.core.errors import is_transient

logger = logging.getLogger(__name__)
T = TypeVar("T")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    label: str = "rpc",
) -> T:
    """Await ``operation()`` up to ``retries + 1`` times.

    Args:
        operation: zero-argument factory returning a fresh awaitable per attempt.
        retries: extra attempts after the first (default ``ACTIVITY_RPC_RETRIES``).
        base_delay: seconds before the first retry; doubled each time
            (default ``ACTIVITY_RPC_RETRY_DELAY_MS`` / 1000).
        label: name used in log lines.
    """
    if retries is None:
        retries = settings.ACTIVITY_RPC_RETRIES
    if base_delay is None:
        base_delay = settings.ACTIVITY_RPC_RETRY_DELAY_MS / 1000.0

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_transient(exc) or attempt >= retries:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                f"{label}: transient failure on attempt {attempt + 1}/{retries + 1}, "
                f"retrying in {delay:.2f}s: {exc}"
            )
            await asyncio.sleep(delay)
            attempt += 1
