
from typing import Iterable, List
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from stableramp.db.base import upsert_insert
from stableramp.db.models.transfers import TransferRecord

# rows per INSERT; keeps bind parameters under the driver limit (asyncpg 32767)
UPSERT_BATCH_SIZE = 500


async def upsert_transfers(
    db: AsyncSession,
    rows: Iterable[dict],
    batch_size: int = UPSERT_BATCH_SIZE,
) -> int:
    """Insert transfer rows keyed by (tx_hash, log_index).

    A conflicting row keeps its amount and parties; only a memo or block
    timestamp that is still null gets filled in. Rows are written in
    batches within the caller's transaction.
    """
    unique = {}
    for row in rows:
        row = dict(row)
        for key in ("token_address", "from_address", "to_address", "tx_hash"):
            row[key] = row[key].lower()
        unique[(row["tx_hash"], row["log_index"])] = row
    if not unique:
        return 0

    table = TransferRecord.__table__
    values = list(unique.values())
    for start in range(0, len(values), batch_size):
        stmt = upsert_insert(TransferRecord).values(values[start:start + batch_size])
        stmt = stmt.on_conflict_do_update(
            index_elements=["tx_hash", "log_index"],
            set_={
                "memo": func.coalesce(table.c.memo, stmt.excluded.memo),
                "block_timestamp": func.coalesce(table.c.block_timestamp, stmt.excluded.block_timestamp),
            },
        )
        await db.execute(stmt)
    return len(unique)


async def get_transfers_for_address(
    db: AsyncSession,
    address: str,
    limit: int,
) -> List[TransferRecord]:
    address = address.lower()
    result = await db.execute(
        select(TransferRecord)
        .where(or_(TransferRecord.from_address == address, TransferRecord.to_address == address))
        .order_by(TransferRecord.block_number.desc(), TransferRecord.log_index.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
