# stableramp/domain/activity/service.py
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from stableramp.core.errors import ValidationError
from stableramp.db.models.cashouts import Cashout
from stableramp.db.models.payments import Payment
from stableramp.db.models.transfers import TransferRecord
from stableramp.db.repositories.cashouts import get_cashouts_for_address
from stableramp.db.repositories.payments import get_payments_for_wallet
from stableramp.db.repositories.transfers import get_transfers_for_address
from stableramp.domain.chain_sync.service import sync_transfers_for_user
from stableramp.ledger.client import LedgerClient
from stableramp.ledger.tokens import normalize_address
from stableramp.ledger.units import format_units
from .schemas import ActivityFeed, ActivityItem, CashoutItem, PaymentItem, TransferItem

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_LIMIT
    return min(max(int(limit), 1), MAX_LIMIT)


def _unix(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def _decimal_str(value) -> Optional[str]:
    if value is None:
        return None
    return format(Decimal(str(value)).normalize(), "f")


def transfer_item(row: TransferRecord, address: str) -> TransferItem:
    direction = "receive" if normalize_address(row.to_address) == address else "send"
    counterparty = row.from_address if direction == "receive" else row.to_address
    decimals = row.decimals if row.decimals is not None else 6
    return TransferItem(
        direction=direction,
        token_address=normalize_address(row.token_address),
        amount_raw=row.amount_raw,
        decimals=decimals,
        amount=format_units(row.amount_raw, decimals),
        counterparty=normalize_address(counterparty),
        tx_hash=row.tx_hash,
        block_number=row.block_number,
        timestamp=row.block_timestamp,
        memo=row.memo,
        event_name=row.event_name,
    )


def payment_item(row: Payment) -> PaymentItem:
    return PaymentItem(
        amount_fiat=_decimal_str(row.amount_fiat) or "0",
        currency=(row.fiat_currency or "").upper(),
        amount_usdt=_decimal_str(row.amount_usdt) or "0",
        tx_hash=row.tx_hash,
        block_number=row.block_number,
        timestamp=_unix(row.created_at),
        status=row.status.value,
        payment_intent_id=row.payment_intent_id,
    )


def cashout_item(row: Cashout) -> CashoutItem:
    return CashoutItem(
        amount_usdt=_decimal_str(row.amount_usdt) or "0",
        fiat_amount=_decimal_str(row.fiat_amount),
        currency=(row.fiat_currency or "").upper(),
        tx_hash=row.tx_hash_onchain,
        timestamp=_unix(row.created_at),
        status=row.status.value,
        stripe_bank_account_id=row.stripe_bank_account_id,
    )


def _sort_key(item: ActivityItem):
    return (item.timestamp or 0, getattr(item, "block_number", None) or 0)


def merge_activity(items: List[ActivityItem], limit: int) -> List[ActivityItem]:
    """Newest first by timestamp; block number orders rows without one."""
    return sorted(items, key=_sort_key, reverse=True)[:limit]


async def get_activity_for_address(
    db: AsyncSession,
    ledger: Optional[LedgerClient],
    address: str,
    limit: Optional[int] = None,
    sync: bool = True,
) -> ActivityFeed:
    address = normalize_address(address)
    if not Web3.is_address(address):
        raise ValidationError("Invalid address")
    limit = clamp_limit(limit)

    synced_to_block = None
    if sync and ledger is not None:
        try:
            synced_to_block = await sync_transfers_for_user(db, ledger, address)
        except Exception as exc:
            # degraded mode: serve what is already stored
            await db.rollback()
            logger.warning(f"Sync failed for {address}; returning cached activity: {exc}")

    transfers = await get_transfers_for_address(db, address, limit)
    payments, _ = await get_payments_for_wallet(db, address, limit)
    cashouts, _ = await get_cashouts_for_address(db, address, limit)

    items: List[ActivityItem] = []
    items.extend(transfer_item(row, address) for row in transfers)
    items.extend(payment_item(row) for row in payments)
    items.extend(cashout_item(row) for row in cashouts)

    return ActivityFeed(synced_to_block=synced_to_block, items=merge_activity(items, limit))
