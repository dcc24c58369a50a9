# stableramp/api/v1/routes_payments.py
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stableramp.db.base import get_db
from stableramp.domain.payments.schemas import (
    OfframpBalance,
    PaymentHistory,
    PaymentIntentCreate,
    PaymentIntentOut,
    PaymentOut,
)
from stableramp.domain.payments.service import (
    create_payment_intent,
    get_offramp_balance,
    get_payment_history,
    get_payment_status,
)
from stableramp.ledger.client import LedgerClient, get_ledger
from stableramp.processor.client import StripeClient, get_processor


router = APIRouter(prefix="/api/payment", tags=["payments"])


@router.post("/create-intent", response_model=PaymentIntentOut)
async def create_intent_endpoint(
    payload: PaymentIntentCreate,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    processor: StripeClient = Depends(get_processor),
):
    return await create_payment_intent(db, ledger, processor, payload)


@router.get("/status/{payment_intent_id}", response_model=PaymentOut)
async def payment_status_endpoint(
    payment_intent_id: str,
    db: AsyncSession = Depends(get_db),
    processor: StripeClient = Depends(get_processor),
):
    return await get_payment_status(db, processor, payment_intent_id)


@router.get("/history/{wallet_address}", response_model=PaymentHistory)
async def payment_history_endpoint(
    wallet_address: str,
    page: int = Query(1),
    limit: int = Query(20),
    db: AsyncSession = Depends(get_db),
):
    return await get_payment_history(db, wallet_address, page=page, limit=limit)


@router.get("/offramp-balance", response_model=OfframpBalance)
async def offramp_balance_endpoint(
    token_symbol: Optional[str] = Query(None),
    ledger: LedgerClient = Depends(get_ledger),
):
    return await get_offramp_balance(ledger, token_symbol)
