# stableramp/domain/chain_sync/service.py
"""Incremental ingestion of a user's stablecoin transfers from ledger logs.

For every configured token the scan resumes one block past the stored
watermark and walks to the chain head in bounded chunks. Each chunk's rows
are committed before the watermark moves to the chunk end, so a crash can
only cause a chunk to be decoded again, never skipped.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from stableramp.core.config import settings
from stableramp.core.errors import ValidationError
from stableramp.core.retry import call_with_retry
from stableramp.db.repositories.sync_watermarks import advance_watermark, get_watermark
from stableramp.db.repositories.transfers import upsert_transfers
from stableramp.ledger.client import LedgerClient
from stableramp.ledger.events import DecodedTransfer, decode_transfer_log, transfer_queries
from stableramp.ledger.tokens import normalize_address

logger = logging.getLogger(__name__)


def iter_chunks(start: int, end: int, max_range: int) -> Iterable[Tuple[int, int]]:
    """Split [start, end] into consecutive inclusive ranges of at most max_range blocks."""
    if max_range < 1:
        raise ValueError("max_range must be positive")
    chunk_from = start
    while chunk_from <= end:
        chunk_to = min(end, chunk_from + max_range - 1)
        yield chunk_from, chunk_to
        chunk_from = chunk_to + 1


def resolve_start_block(watermark: Optional[int], head: int, lookback: int) -> int:
    if watermark is not None:
        return watermark + 1
    if lookback > 0:
        return max(head - lookback, 1)
    return 1


async def _fetch_chunk(
    ledger: LedgerClient,
    user: str,
    token: str,
    chunk_from: int,
    chunk_to: int,
) -> List[DecodedTransfer]:
    decoded: List[DecodedTransfer] = []
    # sequential on purpose: providers rate-limit eth_getLogs
    for topics in transfer_queries(user):
        logs = await call_with_retry(
            lambda topics=topics: ledger.get_logs(token, chunk_from, chunk_to, topics),
            label="get_logs",
        )
        for log in logs:
            event = decode_transfer_log(log)
            if event is None:
                logger.debug(f"Skipping undecodable log in {token} at block {log.get('blockNumber')}")
                continue
            decoded.append(event)
    return decoded


async def _block_timestamps(ledger: LedgerClient, block_numbers: Iterable[int]) -> Dict[int, Optional[int]]:
    timestamps: Dict[int, Optional[int]] = {}
    for number in sorted(set(block_numbers)):
        timestamps[number] = await call_with_retry(
            lambda number=number: ledger.get_block_timestamp(number),
            label="get_block",
        )
    return timestamps


async def sync_token_for_user(
    db: AsyncSession,
    ledger: LedgerClient,
    user: str,
    token: str,
    head: int,
    lookback: int,
    max_range: int,
) -> int:
    """Scan one token up to ``head``; returns the number of rows written."""
    watermark = await get_watermark(db, user, token)
    start = resolve_start_block(watermark, head, lookback)
    if start > head:
        return 0

    decimals = await ledger.token_decimals(token)
    written = 0
    for chunk_from, chunk_to in iter_chunks(start, head, max_range):
        events = await _fetch_chunk(ledger, user, token, chunk_from, chunk_to)
        if events:
            timestamps = await _block_timestamps(ledger, (e.block_number for e in events))
            rows = [
                {
                    "token_address": token,
                    "from_address": e.from_address,
                    "to_address": e.to_address,
                    "amount_raw": str(e.amount_raw),
                    "decimals": decimals,
                    "memo": e.memo,
                    "tx_hash": e.tx_hash,
                    "log_index": e.log_index,
                    "block_number": e.block_number,
                    "block_timestamp": timestamps.get(e.block_number),
                    "event_name": e.event_name,
                }
                for e in events
            ]
            written += await upsert_transfers(db, rows)
            await db.commit()

        await advance_watermark(db, user, token, chunk_to)
        await db.commit()
        logger.debug(f"Synced {user} / {token} blocks {chunk_from}-{chunk_to} ({len(events)} logs)")
    return written


async def sync_transfers_for_user(
    db: AsyncSession,
    ledger: LedgerClient,
    address: str,
    tokens: Optional[Sequence[str]] = None,
    lookback: Optional[int] = None,
    max_range: Optional[int] = None,
) -> int:
    """Bring the local transfer table up to the chain head for ``address``.

    Returns the head block the scan reached. Any non-transient RPC failure
    (or transient one that exhausts its retries) propagates to the caller.
    """
    user = normalize_address(address)
    if not Web3.is_address(user):
        raise ValidationError("Invalid address")

    if tokens is None:
        tokens = settings.sync_token_addresses
    if lookback is None:
        lookback = settings.ACTIVITY_INITIAL_LOOKBACK_BLOCKS
    if max_range is None:
        max_range = settings.ACTIVITY_MAX_BLOCK_RANGE

    head = await call_with_retry(ledger.get_block_number, label="get_block_number")
    total = 0
    for token in tokens:
        total += await sync_token_for_user(
            db, ledger, user, normalize_address(token), head, lookback, max_range
        )
    if total:
        logger.info(f"Ingested {total} transfer(s) for {user} up to block {head}")
    return head
