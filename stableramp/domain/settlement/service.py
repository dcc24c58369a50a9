# stableramp/domain/settlement/service.py
"""
Settlement state machine driven by payment-processor webhook events.

Payments (on-ramp):
  pending/failed --succeeded--> processing --transfer confirmed--> completed
  any non-completed --payment_failed--> failed
  any non-completed --canceled--> canceled

A payment that is completed or already carries a tx hash is never touched
again. Concurrent deliveries of the same success event race on a conditional
claim; only the winner submits a transfer.

Cashouts (off-ramp) only mirror payout status; their on-chain leg happened
before the payout was requested.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from stableramp.db.models.cashouts import CashoutStatus
from stableramp.db.models.payments import Payment, PaymentStatus
from stableramp.db.repositories.cashouts import get_cashout_by_payout_id, update_cashout
from stableramp.db.repositories.payments import (
    claim_for_processing,
    get_payment_by_intent_id,
    update_payment,
)
from stableramp.domain.activity_history.service import mark_deposit_settled
from stableramp.ledger.client import LedgerClient
from stableramp.ledger.tokens import DEFAULT_SYMBOL, normalize_address, token_address_for_symbol
from .schemas import ProcessorEvent
from .transfer import execute_custodial_transfer

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, LedgerClient, Dict[str, Any]], Awaitable[None]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_settled(payment: Payment) -> bool:
    return payment.status == PaymentStatus.COMPLETED or bool(payment.tx_hash)


async def _find_payment(db: AsyncSession, intent: Dict[str, Any]) -> Optional[Payment]:
    intent_id = intent.get("id")
    payment = await get_payment_by_intent_id(db, intent_id) if intent_id else None
    if payment is None:
        logger.warning(f"Payment not found for payment intent {intent_id}")
    return payment


async def handle_payment_succeeded(db: AsyncSession, ledger: LedgerClient, intent: Dict[str, Any]) -> None:
    payment = await _find_payment(db, intent)
    if payment is None:
        return
    if is_settled(payment):
        logger.info(f"Payment {payment.id} already settled (tx {payment.tx_hash}), ignoring")
        return

    if not await claim_for_processing(db, payment.id):
        logger.info(f"Payment {payment.id} is not claimable (in flight or canceled), ignoring")
        return
    await db.refresh(payment)
    logger.info(f"Payment {payment.id} -> processing")

    metadata = intent.get("metadata") or {}
    try:
        wallet = normalize_address(metadata.get("wallet_address") or payment.wallet_address)
        if not wallet:
            raise ValueError("Wallet address not found in payment intent metadata")
        token = metadata.get("token_address")
        if token:
            token = normalize_address(token)
        else:
            token = token_address_for_symbol(metadata.get("token_symbol") or DEFAULT_SYMBOL)

        receipt = await execute_custodial_transfer(ledger, wallet, payment.amount_usdt, token)
    except Exception as exc:
        changes = {"status": PaymentStatus.FAILED, "error_message": str(exc) or type(exc).__name__}
        # a broadcast transfer may still land; keep its hash so it is never re-sent
        submitted = getattr(exc, "tx_hash", None)
        if submitted:
            changes["tx_hash"] = submitted.lower()
        await update_payment(db, payment, **changes)
        logger.error(f"Payment {payment.id} -> failed: {changes['error_message']}")
        raise

    await update_payment(
        db,
        payment,
        status=PaymentStatus.COMPLETED,
        tx_hash=receipt.tx_hash,
        block_number=receipt.block_number,
        completed_at=_now(),
        error_message=None,
    )
    logger.info(f"Payment {payment.id} -> completed (tx {receipt.tx_hash}, block {receipt.block_number})")

    try:
        await mark_deposit_settled(db, payment.payment_intent_id, receipt.tx_hash)
    except Exception as exc:
        await db.rollback()
        logger.warning(f"Could not patch activity history for {payment.payment_intent_id}: {exc}")


async def handle_payment_failed(db: AsyncSession, ledger: LedgerClient, intent: Dict[str, Any]) -> None:
    payment = await _find_payment(db, intent)
    if payment is None:
        return
    if is_settled(payment):
        logger.info(f"Payment {payment.id} already settled, ignoring payment_failed")
        return
    last_error = intent.get("last_payment_error") or {}
    message = last_error.get("message") or "Payment failed"
    await update_payment(
        db, payment, status=PaymentStatus.FAILED, error_message=f"Stripe payment failed: {message}"
    )
    logger.info(f"Payment {payment.id} -> failed ({message})")


async def handle_payment_canceled(db: AsyncSession, ledger: LedgerClient, intent: Dict[str, Any]) -> None:
    payment = await _find_payment(db, intent)
    if payment is None:
        return
    if is_settled(payment):
        logger.info(f"Payment {payment.id} already settled, ignoring cancellation")
        return
    await update_payment(
        db, payment, status=PaymentStatus.CANCELED, error_message="Payment intent was canceled"
    )
    logger.info(f"Payment {payment.id} -> canceled")


async def _find_cashout(db: AsyncSession, payout: Dict[str, Any]):
    payout_id = payout.get("id")
    cashout = await get_cashout_by_payout_id(db, payout_id) if payout_id else None
    if cashout is None:
        logger.warning(f"Cashout not found for payout {payout_id}")
    return cashout


async def handle_payout_paid(db: AsyncSession, ledger: LedgerClient, payout: Dict[str, Any]) -> None:
    cashout = await _find_cashout(db, payout)
    if cashout is None:
        return
    if cashout.status == CashoutStatus.PAID:
        return
    await update_cashout(db, cashout, status=CashoutStatus.PAID, completed_at=_now(), error_message=None)
    logger.info(f"Cashout {cashout.id} -> paid")


async def handle_payout_failed(db: AsyncSession, ledger: LedgerClient, payout: Dict[str, Any]) -> None:
    cashout = await _find_cashout(db, payout)
    if cashout is None:
        return
    if cashout.status == CashoutStatus.PAID:
        logger.warning(f"Cashout {cashout.id} already paid, ignoring payout.failed")
        return
    code = payout.get("failure_code") or "unknown"
    message = payout.get("failure_message") or "Payout failed"
    await update_cashout(
        db,
        cashout,
        status=CashoutStatus.FAILED,
        error_message=f"Stripe payout failed: {code} - {message}",
    )
    logger.info(f"Cashout {cashout.id} -> failed ({code})")


async def handle_payout_canceled(db: AsyncSession, ledger: LedgerClient, payout: Dict[str, Any]) -> None:
    cashout = await _find_cashout(db, payout)
    if cashout is None:
        return
    if cashout.status == CashoutStatus.PAID:
        logger.warning(f"Cashout {cashout.id} already paid, ignoring payout.canceled")
        return
    await update_cashout(
        db, cashout, status=CashoutStatus.CANCELED, error_message="Stripe payout was canceled"
    )
    logger.info(f"Cashout {cashout.id} -> canceled")


EVENT_HANDLERS: Dict[str, Handler] = {
    "payment_intent.succeeded": handle_payment_succeeded,
    "payment_intent.payment_failed": handle_payment_failed,
    "payment_intent.canceled": handle_payment_canceled,
    "payout.paid": handle_payout_paid,
    "payout.failed": handle_payout_failed,
    "payout.canceled": handle_payout_canceled,
}


async def handle_event(db: AsyncSession, ledger: LedgerClient, event: ProcessorEvent) -> bool:
    """Dispatch one verified event. Returns False for event types nobody handles."""
    handler = EVENT_HANDLERS.get(event.type)
    if handler is None:
        logger.debug(f"Ignoring unhandled event type {event.type}")
        return False
    logger.info(f"Handling {event.type} ({event.id})")
    await handler(db, ledger, event.data.obj)
    return True
