from decimal import Decimal

import pytest

from stableramp.core.errors import InsufficientBalanceError, NotFoundError, ProcessorError, ValidationError
from stableramp.db.models.cashouts import CashoutStatus
from stableramp.db.models.payments import PaymentStatus
from stableramp.db.repositories.cashouts import create_cashout, update_cashout
from stableramp.db.repositories.payments import get_payment_by_intent_id
from stableramp.domain.cashouts.schemas import CashoutRequest
from stableramp.domain.cashouts.service import get_cashout_history, get_lifetime_volume, request_cashout
from stableramp.domain.payments.schemas import PaymentIntentCreate
from stableramp.domain.payments.service import (
    create_payment_intent,
    get_offramp_balance,
    get_payment_history,
    get_payment_status,
)

from conftest import ALPHA, BETA, CUSTODIAL, OTHER, USER, WALLET, FakeLedger, make_transfer_log, tx_hash


def intent_request(**overrides):
    values = {"wallet_address": WALLET, "amount": "10.5", "currency": "USD", "token_symbol": "AlphaUSD"}
    values.update(overrides)
    return PaymentIntentCreate(**values)


@pytest.fixture
def funded_ledger():
    ledger = FakeLedger(head=10)
    ledger.set_balance(ALPHA, CUSTODIAL, 100_000_000)
    return ledger


class TestCreatePaymentIntent:
    async def test_creates_pending_payment_with_metadata(self, db, funded_ledger, processor):
        out = await create_payment_intent(db, funded_ledger, processor, intent_request())

        assert out.status == PaymentStatus.PENDING
        assert out.amount_stablecoin == "10.500000"
        intent = processor.created_intents[0]
        assert intent["amount"] == 1050
        assert intent["currency"] == "usd"
        assert intent["metadata"]["wallet_address"] == WALLET
        assert intent["metadata"]["token_address"] == ALPHA

        payment = await get_payment_by_intent_id(db, out.payment_intent_id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount_usdt == Decimal("10.5")

    async def test_explicit_fiat_amount_sets_rate(self, db, funded_ledger, processor):
        out = await create_payment_intent(
            db, funded_ledger, processor, intent_request(amount="9", currency="eur", fiat_amount="10")
        )
        assert out.exchange_rate == "0.90000000"
        assert processor.created_intents[0]["amount"] == 1000

    @pytest.mark.parametrize(
        "overrides",
        [
            {"wallet_address": "0x123"},
            {"amount": "0"},
            {"amount": "abc"},
            {"currency": "gbp"},
            {"token_symbol": " "},
        ],
    )
    async def test_rejects_invalid_requests(self, db, funded_ledger, processor, overrides):
        with pytest.raises(ValidationError):
            await create_payment_intent(db, funded_ledger, processor, intent_request(**overrides))
        assert processor.created_intents == []

    async def test_rejects_when_custodial_wallet_is_short(self, db, processor):
        ledger = FakeLedger()
        ledger.set_balance(ALPHA, CUSTODIAL, 1_000_000)
        with pytest.raises(InsufficientBalanceError) as exc_info:
            await create_payment_intent(db, ledger, processor, intent_request())
        assert "Insufficient AlphaUSD balance" in str(exc_info.value)
        assert processor.created_intents == []


class TestPaymentStatus:
    async def test_not_found(self, db, processor):
        with pytest.raises(NotFoundError):
            await get_payment_status(db, processor, "pi_missing")

    async def test_processor_cancellation_is_persisted(self, db, funded_ledger, processor):
        out = await create_payment_intent(db, funded_ledger, processor, intent_request())
        processor.intents[out.payment_intent_id]["status"] = "canceled"

        status = await get_payment_status(db, processor, out.payment_intent_id)

        assert status.status == PaymentStatus.CANCELED
        payment = await get_payment_by_intent_id(db, out.payment_intent_id)
        assert payment.status == PaymentStatus.CANCELED

    async def test_unsettled_capture_is_reported_but_not_written(self, db, funded_ledger, processor):
        out = await create_payment_intent(db, funded_ledger, processor, intent_request())
        processor.intents[out.payment_intent_id]["status"] = "succeeded"

        status = await get_payment_status(db, processor, out.payment_intent_id)

        assert status.status == PaymentStatus.PROCESSING
        payment = await get_payment_by_intent_id(db, out.payment_intent_id)
        assert payment.status == PaymentStatus.PENDING

    async def test_processor_outage_returns_stored_status(self, db, funded_ledger, processor):
        out = await create_payment_intent(db, funded_ledger, processor, intent_request())
        processor.retrieve_error = ProcessorError("Stripe request failed: timeout", transient=True)

        status = await get_payment_status(db, processor, out.payment_intent_id)
        assert status.status == PaymentStatus.PENDING


class TestPaymentHistoryAndBalance:
    async def test_history_is_paginated(self, db, funded_ledger, processor):
        for _ in range(3):
            await create_payment_intent(db, funded_ledger, processor, intent_request(amount="1"))

        history = await get_payment_history(db, WALLET, page=2, limit=2)

        assert history.total == 3
        assert history.total_pages == 2
        assert len(history.payments) == 1

    async def test_offramp_balance(self):
        ledger = FakeLedger()
        ledger.set_balance(BETA, CUSTODIAL, 2_500_000)

        balance = await get_offramp_balance(ledger, "BetaUSD")

        assert balance.address == CUSTODIAL
        assert balance.balance == "2.500000"


def deposit_receipt(ledger, amount_raw=25_000_000, status=1, token=ALPHA, recipient=CUSTODIAL):
    hash_ = tx_hash(4242)
    ledger.receipts[hash_] = {
        "transactionHash": hash_,
        "status": status,
        "blockNumber": 9,
        "logs": [make_transfer_log(token, USER, recipient, amount_raw, block_number=9, tx=hash_)],
    }
    return hash_


class TestRequestCashout:
    async def test_records_verified_amount_and_creates_payout(self, db, processor):
        ledger = FakeLedger(head=10)
        hash_ = deposit_receipt(ledger)

        cashout = await request_cashout(
            db, ledger, processor,
            CashoutRequest(employee_address=USER, tx_hash=hash_, stripe_bank_account_id="ba_1"),
        )

        assert cashout.status == CashoutStatus.PENDING
        assert cashout.amount_usdt == Decimal("25")
        assert cashout.payout_id_stripe == "po_test_1"
        assert processor.payouts[0]["amount"] == 2500
        assert processor.payouts[0]["destination"] == "ba_1"

    async def test_same_tx_hash_is_idempotent(self, db, processor):
        ledger = FakeLedger(head=10)
        hash_ = deposit_receipt(ledger)
        request = CashoutRequest(employee_address=USER, tx_hash=hash_)

        first = await request_cashout(db, ledger, processor, request)
        second = await request_cashout(db, ledger, processor, request)

        assert first.id == second.id
        assert len(processor.payouts) == 1

    async def test_failed_transaction_is_rejected(self, db, processor):
        ledger = FakeLedger(head=10)
        hash_ = deposit_receipt(ledger, status=0)
        with pytest.raises(ValidationError):
            await request_cashout(db, ledger, processor, CashoutRequest(employee_address=USER, tx_hash=hash_))

    async def test_transfer_must_reach_custodial_wallet(self, db, processor):
        ledger = FakeLedger(head=10)
        hash_ = deposit_receipt(ledger, recipient=OTHER)
        with pytest.raises(ValidationError):
            await request_cashout(db, ledger, processor, CashoutRequest(employee_address=USER, tx_hash=hash_))

    async def test_payout_error_marks_cashout_failed(self, db, processor):
        ledger = FakeLedger(head=10)
        hash_ = deposit_receipt(ledger)
        processor.payout_error = ProcessorError("Stripe error: insufficient funds", status=400)

        cashout = await request_cashout(db, ledger, processor, CashoutRequest(employee_address=USER, tx_hash=hash_))

        assert cashout.status == CashoutStatus.FAILED
        assert "insufficient funds" in cashout.error_message

    async def test_payout_timeout_keeps_cashout_pending_and_retries(self, db, processor):
        ledger = FakeLedger(head=10)
        hash_ = deposit_receipt(ledger)
        request = CashoutRequest(employee_address=USER, tx_hash=hash_, stripe_bank_account_id="ba_1")
        processor.payout_error = ProcessorError("Stripe request failed: timeout", transient=True)

        first = await request_cashout(db, ledger, processor, request)

        assert first.status == CashoutStatus.PENDING
        assert first.payout_id_stripe is None
        assert "timeout" in first.error_message

        processor.payout_error = None
        second = await request_cashout(db, ledger, processor, request)

        assert second.id == first.id
        assert second.status == CashoutStatus.PENDING
        assert second.payout_id_stripe == "po_test_1"
        assert second.error_message is None
        assert processor.payouts[0]["idempotency_key"] == f"cashout-{hash_}"

    async def test_failed_cashout_is_not_retried(self, db, processor):
        ledger = FakeLedger(head=10)
        hash_ = deposit_receipt(ledger)
        request = CashoutRequest(employee_address=USER, tx_hash=hash_)
        processor.payout_error = ProcessorError("Stripe error: invalid destination", status=400)
        await request_cashout(db, ledger, processor, request)

        processor.payout_error = None
        again = await request_cashout(db, ledger, processor, request)

        assert again.status == CashoutStatus.FAILED
        assert processor.payouts == []


class TestCashoutReads:
    async def test_history_and_lifetime_volume(self, db):
        for n, status in enumerate([CashoutStatus.PAID, CashoutStatus.PENDING, CashoutStatus.FAILED]):
            cashout = await create_cashout(
                db,
                employee_address=USER,
                amount_usdt=Decimal("10"),
                fiat_currency="usd",
                tx_hash_onchain=tx_hash(n + 1),
                stripe_bank_account_id="ba_1",
                status=CashoutStatus.PENDING,
            )
            await update_cashout(db, cashout, status=status)

        history = await get_cashout_history(db, USER)
        volume = await get_lifetime_volume(db, "ba_1")

        assert history.total == 3
        assert Decimal(volume.total_volume) == Decimal("20")
