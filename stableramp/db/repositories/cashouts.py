
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from stableramp.db.models.cashouts import Cashout, CashoutStatus


async def create_cashout(db: AsyncSession, **values) -> Cashout:
    values["employee_address"] = values["employee_address"].lower()
    values["tx_hash_onchain"] = values["tx_hash_onchain"].lower()
    cashout = Cashout(**values)
    db.add(cashout)
    await db.commit()
    await db.refresh(cashout)
    return cashout


async def get_cashout_by_payout_id(db: AsyncSession, payout_id: str) -> Optional[Cashout]:
    result = await db.execute(select(Cashout).where(Cashout.payout_id_stripe == payout_id))
    return result.scalar_one_or_none()


async def get_cashout_by_tx_hash(db: AsyncSession, tx_hash: str) -> Optional[Cashout]:
    result = await db.execute(select(Cashout).where(Cashout.tx_hash_onchain == tx_hash.lower()))
    return result.scalar_one_or_none()


async def update_cashout(db: AsyncSession, cashout: Cashout, **changes) -> Cashout:
    for key, value in changes.items():
        setattr(cashout, key, value)
    await db.commit()
    await db.refresh(cashout)
    return cashout


async def get_cashouts_for_address(
    db: AsyncSession,
    address: str,
    limit: int,
    offset: int = 0,
) -> Tuple[List[Cashout], int]:
    address = address.lower()
    total = await db.scalar(
        select(func.count()).select_from(Cashout).where(Cashout.employee_address == address)
    )
    result = await db.execute(
        select(Cashout)
        .where(Cashout.employee_address == address)
        .order_by(Cashout.created_at.desc(), Cashout.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total or 0)


async def get_lifetime_volume(db: AsyncSession, bank_account_id: str) -> Decimal:
    total = await db.scalar(
        select(func.coalesce(func.sum(Cashout.amount_usdt), 0)).where(
            Cashout.stripe_bank_account_id == bank_account_id,
            Cashout.status.notin_([CashoutStatus.FAILED, CashoutStatus.CANCELED]),
        )
    )
    return Decimal(str(total or 0))
