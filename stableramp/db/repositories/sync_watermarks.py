
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from stableramp.db.base import upsert_insert
from stableramp.db.models.sync_watermarks import SyncWatermark


async def get_watermark(
    db: AsyncSession,
    user_address: str,
    token_address: str,
) -> Optional[int]:
    result = await db.execute(
        select(SyncWatermark.last_synced_block).where(
            SyncWatermark.user_address == user_address.lower(),
            SyncWatermark.token_address == token_address.lower(),
        )
    )
    return result.scalar_one_or_none()


async def advance_watermark(
    db: AsyncSession,
    user_address: str,
    token_address: str,
    block_number: int,
) -> None:
    """Insert or raise the watermark; an older block number never overwrites a newer one."""
    stmt = upsert_insert(SyncWatermark).values(
        user_address=user_address.lower(),
        token_address=token_address.lower(),
        last_synced_block=block_number,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_address", "token_address"],
        set_={"last_synced_block": stmt.excluded.last_synced_block, "updated_at": func.now()},
        where=SyncWatermark.last_synced_block < stmt.excluded.last_synced_block,
    )
    await db.execute(stmt)
