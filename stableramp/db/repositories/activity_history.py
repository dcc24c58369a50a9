
from typing import List, Tuple
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from stableramp.db.models.activity_history import ActivityHistory, ActivityStatus


async def create_activity(db: AsyncSession, **values) -> ActivityHistory:
    record = ActivityHistory(**values)
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def get_activity_for_wallet(
    db: AsyncSession,
    wallet_address: str,
    limit: int,
    offset: int = 0,
) -> Tuple[List[ActivityHistory], int]:
    wallet_address = wallet_address.lower()
    total = await db.scalar(
        select(func.count())
        .select_from(ActivityHistory)
        .where(ActivityHistory.wallet_address == wallet_address)
    )
    result = await db.execute(
        select(ActivityHistory)
        .where(ActivityHistory.wallet_address == wallet_address)
        .order_by(ActivityHistory.created_at.desc(), ActivityHistory.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total or 0)


async def patch_by_payment_intent(
    db: AsyncSession,
    payment_intent_id: str,
    tx_hash: str,
    status: ActivityStatus = ActivityStatus.SUCCESS,
) -> int:
    result = await db.execute(
        update(ActivityHistory)
        .where(ActivityHistory.payment_intent_id == payment_intent_id)
        .values(tx_hash=tx_hash.lower(), status=status)
        .execution_options(synchronize_session="fetch")
    )
    await db.commit()
    return result.rowcount
