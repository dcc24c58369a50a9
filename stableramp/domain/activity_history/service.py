# stableramp/domain/activity_history/service.py
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stableramp.core.errors import ValidationError
from stableramp.db.models.activity_history import ActivityHistory, ActivityStatus, ActivityType
from stableramp.db.repositories.activity_history import (
    create_activity,
    get_activity_for_wallet,
    patch_by_payment_intent,
)
from .schemas import ActivityHistoryOut, ActivityHistoryPage, ActivityLogIn

logger = logging.getLogger(__name__)


def _lower(value: Optional[str]) -> Optional[str]:
    return value.strip().lower() if value else None


def _parse_decimal(value: Optional[str], field: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be numeric")
    if not parsed.is_finite():
        raise ValidationError(f"{field} must be numeric")
    return parsed


async def log_activity(db: AsyncSession, data: ActivityLogIn) -> ActivityHistory:
    if not data.wallet_address:
        raise ValidationError("wallet_address is required")
    try:
        activity_type = ActivityType(data.activity_type)
    except ValueError:
        raise ValidationError("activity_type must be one of send, deposit, withdraw")
    amount = _parse_decimal(data.amount, "amount")
    if amount is None:
        raise ValidationError("amount is required")
    try:
        status = ActivityStatus(data.status) if data.status else ActivityStatus.SUCCESS
    except ValueError:
        raise ValidationError("status must be one of pending, success, failed")

    record = await create_activity(
        db,
        wallet_address=_lower(data.wallet_address),
        activity_type=activity_type,
        token_address=_lower(data.token_address),
        token_symbol=data.token_symbol,
        amount=amount,
        amount_fiat=_parse_decimal(data.amount_fiat, "amount_fiat"),
        currency=data.currency.lower() if data.currency else None,
        to_address=_lower(data.to_address),
        from_address=_lower(data.from_address),
        tx_hash=_lower(data.tx_hash),
        payment_intent_id=data.payment_intent_id,
        payout_id=data.payout_id,
        status=status,
        memo=data.memo,
    )
    logger.info(f"Logged {activity_type.value} activity {record.id} for {record.wallet_address}")
    return record


async def list_activity_history(
    db: AsyncSession,
    wallet_address: str,
    limit: int = 50,
    offset: int = 0,
) -> ActivityHistoryPage:
    if not wallet_address:
        raise ValidationError("wallet_address is required")
    limit = min(max(int(limit), 1), 200)
    offset = max(int(offset), 0)
    rows, total = await get_activity_for_wallet(db, wallet_address, limit, offset)
    items = [ActivityHistoryOut.model_validate(row) for row in rows]
    return ActivityHistoryPage(items=items, total=total, limit=limit, offset=offset)


async def mark_deposit_settled(db: AsyncSession, payment_intent_id: str, tx_hash: str) -> int:
    """Attach the settlement tx hash to the client's deposit entry."""
    updated = await patch_by_payment_intent(db, payment_intent_id, tx_hash, ActivityStatus.SUCCESS)
    if not updated:
        logger.debug(f"No activity history row for payment intent {payment_intent_id}")
    return updated
