
from typing import List, Optional, Tuple
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func, select

from stableramp.db.models.payments import Payment, PaymentStatus

# states a capture-succeeded event may take a payment out of
CLAIMABLE_STATUSES = (PaymentStatus.PENDING, PaymentStatus.FAILED)


async def create_payment(db: AsyncSession, **values) -> Payment:
    values["wallet_address"] = values["wallet_address"].lower()
    payment = Payment(**values)
    db.add(payment)
    await db.commit()
    await db.refresh(payment)
    return payment


async def get_payment_by_intent_id(
    db: AsyncSession,
    payment_intent_id: str,
) -> Optional[Payment]:
    result = await db.execute(
        select(Payment).where(Payment.payment_intent_id == payment_intent_id)
    )
    return result.scalar_one_or_none()


async def update_payment(db: AsyncSession, payment: Payment, **changes) -> Payment:
    for key, value in changes.items():
        setattr(payment, key, value)
    await db.commit()
    await db.refresh(payment)
    return payment


async def claim_for_processing(db: AsyncSession, payment_id: int) -> bool:
    """Move a payment to processing unless another delivery already did.

    Returns False when the row is no longer claimable (settled, in flight,
    canceled, or already carrying a tx hash).
    """
    result = await db.execute(
        update(Payment)
        .where(
            Payment.id == payment_id,
            Payment.status.in_(CLAIMABLE_STATUSES),
            Payment.tx_hash.is_(None),
        )
        .values(status=PaymentStatus.PROCESSING, error_message=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def get_payments_for_wallet(
    db: AsyncSession,
    wallet_address: str,
    limit: int,
    offset: int = 0,
) -> Tuple[List[Payment], int]:
    wallet_address = wallet_address.lower()
    total = await db.scalar(
        select(func.count()).select_from(Payment).where(Payment.wallet_address == wallet_address)
    )
    result = await db.execute(
        select(Payment)
        .where(Payment.wallet_address == wallet_address)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), int(total or 0)
