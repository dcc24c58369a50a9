# stableramp/domain/payments/service.py
import logging
import math
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from stableramp.core.errors import InsufficientBalanceError, NotFoundError, StableRampError, ValidationError
from stableramp.db.models.payments import PaymentStatus
from stableramp.db.repositories.payments import (
    create_payment,
    get_payment_by_intent_id,
    get_payments_for_wallet,
    update_payment,
)
from stableramp.ledger.client import LedgerClient
from stableramp.ledger.tokens import DEFAULT_SYMBOL, normalize_address, token_address_for_symbol
from stableramp.ledger.units import format_units, to_raw_units
from stableramp.processor.client import StripeClient, to_minor_units
from .schemas import OfframpBalance, PaymentHistory, PaymentIntentCreate, PaymentIntentOut, PaymentOut

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES = ("usd", "eur")
STABLECOIN_PLACES = Decimal("0.000001")
FIAT_PLACES = Decimal("0.01")
RATE_PLACES = Decimal("0.00000001")


def _positive_decimal(value: Optional[str], field: str) -> Decimal:
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError(f"Invalid {field}")
    if not parsed.is_finite() or parsed <= 0:
        raise ValidationError(f"Invalid {field}")
    return parsed


async def _check_liquidity(ledger: LedgerClient, token_address: str, amount: Decimal, symbol: str):
    """Fail early when the custodial wallet cannot cover ``amount``.

    Ledger trouble is only logged; settlement checks the balance again.
    """
    try:
        decimals = await ledger.token_decimals(token_address)
        balance = await ledger.balance_of(token_address, ledger.custodial_address)
    except StableRampError as exc:
        logger.warning(f"Failed to check offramp balance for {token_address}: {exc}")
        return
    required = to_raw_units(amount, decimals)
    if balance < required:
        raise InsufficientBalanceError(
            f"Insufficient {symbol} balance in offramp wallet. "
            f"Required: {format_units(required, decimals)}, Available: {format_units(balance, decimals)}"
        )


async def create_payment_intent(
    db: AsyncSession,
    ledger: LedgerClient,
    processor: StripeClient,
    data: PaymentIntentCreate,
) -> PaymentIntentOut:
    wallet = normalize_address(data.wallet_address)
    if not Web3.is_address(wallet):
        raise ValidationError("Invalid wallet address")
    amount = _positive_decimal(data.amount, "amount").quantize(STABLECOIN_PLACES)
    currency = (data.currency or "").lower()
    if currency not in SUPPORTED_CURRENCIES:
        raise ValidationError("Invalid currency. Supported: usd, eur")
    symbol = (data.token_symbol or "").strip()
    if not symbol:
        raise ValidationError("token_symbol is required")
    token_address = normalize_address(data.token_address) or token_address_for_symbol(symbol)

    # stablecoins are pegged; an explicit fiat amount sets the rate
    if data.fiat_amount:
        fiat_amount = _positive_decimal(data.fiat_amount, "fiat_amount").quantize(FIAT_PLACES)
        exchange_rate = (amount / fiat_amount).quantize(RATE_PLACES)
    else:
        fiat_amount = amount.quantize(FIAT_PLACES)
        exchange_rate = Decimal("1")

    await _check_liquidity(ledger, token_address, amount, symbol)

    intent = await processor.create_payment_intent(
        to_minor_units(fiat_amount),
        currency,
        metadata={
            "wallet_address": wallet,
            "amount_stablecoin": str(amount),
            "token_symbol": symbol,
            "token_address": token_address,
            "exchange_rate": str(exchange_rate),
        },
    )

    payment = await create_payment(
        db,
        payment_intent_id=intent["id"],
        wallet_address=wallet,
        amount_fiat=fiat_amount,
        fiat_currency=currency,
        amount_usdt=amount,
        exchange_rate=exchange_rate,
        status=PaymentStatus.PENDING,
    )
    logger.info(f"Created payment {payment.id} for intent {payment.payment_intent_id} ({amount} {symbol})")

    return PaymentIntentOut(
        payment_intent_id=intent["id"],
        client_secret=intent.get("client_secret"),
        amount=str(fiat_amount),
        currency=currency,
        amount_stablecoin=str(amount),
        token_symbol=symbol,
        token_address=token_address,
        exchange_rate=str(exchange_rate),
        wallet_address=wallet,
        status=PaymentStatus.PENDING,
    )


async def get_payment_status(
    db: AsyncSession,
    processor: StripeClient,
    payment_intent_id: str,
) -> PaymentOut:
    """Stored payment refreshed from the processor.

    Only unsettled payments are moved here (to canceled or failed). A capture
    the webhook has not settled yet is reported as processing without being
    written, so the webhook can still claim it.
    """
    payment = await get_payment_by_intent_id(db, payment_intent_id)
    if payment is None:
        raise NotFoundError("Payment not found")

    view = PaymentOut.model_validate(payment)
    if payment.status in (PaymentStatus.COMPLETED, PaymentStatus.CANCELED):
        return view

    try:
        intent = await processor.retrieve_payment_intent(payment_intent_id)
    except StableRampError as exc:
        logger.warning(f"Failed to refresh payment intent {payment_intent_id}: {exc}")
        return view

    remote = intent.get("status")
    if remote == "succeeded":
        if payment.status == PaymentStatus.PENDING:
            view.status = PaymentStatus.COMPLETED if payment.tx_hash else PaymentStatus.PROCESSING
        return view

    target = None
    if remote == "canceled":
        target = PaymentStatus.CANCELED
    elif remote == "requires_payment_method" and intent.get("last_payment_error"):
        # a fresh intent also sits in requires_payment_method; only a failed attempt counts
        target = PaymentStatus.FAILED
    if target is not None and payment.status != PaymentStatus.PROCESSING and not payment.tx_hash:
        payment = await update_payment(db, payment, status=target)
        logger.info(f"Payment {payment.id} -> {target.value} (processor status {remote})")
        view = PaymentOut.model_validate(payment)
    return view


async def get_payment_history(
    db: AsyncSession,
    wallet_address: str,
    page: int = 1,
    limit: int = 20,
) -> PaymentHistory:
    wallet = normalize_address(wallet_address)
    if not Web3.is_address(wallet):
        raise ValidationError("Invalid wallet address")
    page = max(int(page), 1)
    limit = min(max(int(limit), 1), 100)
    rows, total = await get_payments_for_wallet(db, wallet, limit, (page - 1) * limit)
    return PaymentHistory(
        payments=[PaymentOut.model_validate(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit),
    )


async def get_offramp_balance(ledger: LedgerClient, token_symbol: Optional[str] = None) -> OfframpBalance:
    token_address = token_address_for_symbol(token_symbol or DEFAULT_SYMBOL)
    address = ledger.custodial_address
    decimals = await ledger.token_decimals(token_address)
    balance = await ledger.balance_of(token_address, address)
    return OfframpBalance(
        address=address,
        token_address=token_address,
        balance=format_units(balance, decimals),
        decimals=decimals,
    )
