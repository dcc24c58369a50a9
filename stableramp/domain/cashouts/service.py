# stableramp/domain/cashouts/service.py
import logging
import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from stableramp.core.config import settings
from stableramp.core.errors import ProcessorError, ValidationError
from stableramp.core.retry import call_with_retry
from stableramp.db.models.cashouts import Cashout, CashoutStatus
from stableramp.db.repositories import cashouts as cashout_repo
from stableramp.ledger.client import LedgerClient
from stableramp.ledger.events import TRANSFER, DecodedTransfer, decode_transfer_log
from stableramp.ledger.tokens import normalize_address
from stableramp.ledger.units import format_units
from stableramp.processor.client import StripeClient, to_minor_units
from .schemas import CashoutHistory, CashoutOut, CashoutRequest, LifetimeVolume

logger = logging.getLogger(__name__)

TX_HASH_RE = re.compile(r"^0x[0-9a-f]{64}$")
SUPPORTED_CURRENCIES = ("usd", "eur")


def _status_ok(receipt: Dict[str, Any]) -> bool:
    status = receipt.get("status")
    if isinstance(status, str):
        status = int(status, 16) if status.startswith("0x") else int(status)
    return status == 1


def find_deposit_transfer(
    receipt: Dict[str, Any],
    custodial_address: str,
    token_addresses,
) -> Optional[DecodedTransfer]:
    """First plain Transfer log from a known token into the custodial wallet.

    Account-abstraction receipts carry extra logs, so every log is checked.
    """
    tokens = {normalize_address(t) for t in token_addresses}
    for log in receipt.get("logs") or []:
        event = decode_transfer_log(log)
        if event is None or event.event_name != TRANSFER:
            continue
        if event.token_address in tokens and event.to_address == custodial_address:
            return event
    return None


async def verify_deposit(ledger: LedgerClient, tx_hash: str) -> Tuple[DecodedTransfer, Decimal]:
    receipt = await call_with_retry(
        lambda: ledger.get_transaction_receipt(tx_hash), label="get_transaction_receipt"
    )
    if receipt is None:
        raise ValidationError("Transaction not found")
    if not _status_ok(receipt):
        raise ValidationError("Transaction failed")

    event = find_deposit_transfer(receipt, ledger.custodial_address, settings.sync_token_addresses)
    if event is None:
        raise ValidationError("No stablecoin transfer to the offramp wallet found in transaction")
    decimals = await ledger.token_decimals(event.token_address)
    return event, Decimal(format_units(event.amount_raw, decimals))


async def _create_payout(db: AsyncSession, processor: StripeClient, cashout: Cashout) -> Cashout:
    """Create the bank payout for ``cashout``.

    The idempotency key is derived from the deposit hash, so calling this
    again after a timeout never creates a second payout. Transient errors
    leave the cashout pending for the next request; permanent ones fail it.
    """
    try:
        payout = await processor.create_payout(
            to_minor_units(cashout.fiat_amount),
            cashout.fiat_currency,
            destination=cashout.stripe_bank_account_id,
            metadata={
                "cashout_id": str(cashout.id),
                "employee_address": cashout.employee_address,
                "tx_hash": cashout.tx_hash_onchain,
            },
            idempotency_key=f"cashout-{cashout.tx_hash_onchain}",
        )
    except ProcessorError as exc:
        if exc.transient:
            logger.warning(f"Payout creation for cashout {cashout.id} interrupted, will retry: {exc}")
            return await cashout_repo.update_cashout(
                db, cashout, error_message=f"Failed to create payout: {exc}"
            )
        logger.error(f"Payout creation failed for cashout {cashout.id}: {exc}")
        return await cashout_repo.update_cashout(
            db, cashout, status=CashoutStatus.FAILED, error_message=f"Failed to create payout: {exc}"
        )

    cashout = await cashout_repo.update_cashout(
        db, cashout, payout_id_stripe=payout["id"], error_message=None
    )
    logger.info(f"Cashout {cashout.id} payout {cashout.payout_id_stripe} created")
    return cashout


async def request_cashout(
    db: AsyncSession,
    ledger: LedgerClient,
    processor: StripeClient,
    data: CashoutRequest,
) -> Cashout:
    employee = normalize_address(data.employee_address)
    if not Web3.is_address(employee):
        raise ValidationError("Invalid employee address")
    tx_hash = normalize_address(data.tx_hash)
    if not TX_HASH_RE.match(tx_hash):
        raise ValidationError("Invalid transaction hash")
    currency = (data.fiat_currency or "").lower()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError("Invalid currency. Supported: usd, eur")
    try:
        exchange_rate = Decimal(str(data.exchange_rate)) if data.exchange_rate else Decimal("1")
    except InvalidOperation:
        raise ValidationError("Invalid exchange_rate")
    if not exchange_rate.is_finite() or exchange_rate <= 0:
        raise ValidationError("Invalid exchange_rate")

    existing = await cashout_repo.get_cashout_by_tx_hash(db, tx_hash)
    if existing is not None:
        logger.info(f"Cashout for {tx_hash} already recorded (id {existing.id})")
        if existing.status == CashoutStatus.PENDING and not existing.payout_id_stripe:
            # an earlier payout call may or may not have reached the processor
            return await _create_payout(db, processor, existing)
        return existing

    event, amount = await verify_deposit(ledger, tx_hash)
    # exchange_rate is fiat -> stablecoin
    fiat_amount = (amount / exchange_rate).quantize(Decimal("0.01"))

    cashout = await cashout_repo.create_cashout(
        db,
        employee_address=employee,
        amount_usdt=amount,
        fiat_currency=currency,
        fiat_amount=fiat_amount,
        exchange_rate=exchange_rate,
        tx_hash_onchain=tx_hash,
        stripe_bank_account_id=data.stripe_bank_account_id,
        status=CashoutStatus.PENDING,
    )
    logger.info(f"Cashout {cashout.id} recorded: {amount} from {event.from_address} in {tx_hash}")

    return await _create_payout(db, processor, cashout)


async def get_cashout_history(
    db: AsyncSession,
    address: str,
    page: int = 1,
    limit: int = 20,
) -> CashoutHistory:
    address = normalize_address(address)
    if not Web3.is_address(address):
        raise ValidationError("Invalid employee address")
    page = max(int(page), 1)
    limit = min(max(int(limit), 1), 100)
    rows, total = await cashout_repo.get_cashouts_for_address(db, address, limit, (page - 1) * limit)
    return CashoutHistory(
        cashouts=[CashoutOut.model_validate(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )


async def get_lifetime_volume(db: AsyncSession, bank_account_id: str) -> LifetimeVolume:
    if not bank_account_id:
        raise ValidationError("bank_account_id is required")
    total = await cashout_repo.get_lifetime_volume(db, bank_account_id)
    return LifetimeVolume(stripe_bank_account_id=bank_account_id, total_volume=str(total))
