# stableramp/api/v1/routes_cashouts.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stableramp.db.base import get_db
from stableramp.domain.cashouts.schemas import CashoutHistory, CashoutOut, CashoutRequest, LifetimeVolume
from stableramp.domain.cashouts.service import get_cashout_history, get_lifetime_volume, request_cashout
from stableramp.ledger.client import LedgerClient, get_ledger
from stableramp.processor.client import StripeClient, get_processor


router = APIRouter(prefix="/api/cashout", tags=["cashouts"])


@router.post("/request", response_model=CashoutOut)
async def request_cashout_endpoint(
    payload: CashoutRequest,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
    processor: StripeClient = Depends(get_processor),
):
    return await request_cashout(db, ledger, processor, payload)


@router.get("/history/{address}", response_model=CashoutHistory)
async def cashout_history_endpoint(
    address: str,
    page: int = Query(1),
    limit: int = Query(20),
    db: AsyncSession = Depends(get_db),
):
    return await get_cashout_history(db, address, page=page, limit=limit)


@router.get("/lifetime-volume/{bank_account_id}", response_model=LifetimeVolume)
async def lifetime_volume_endpoint(
    bank_account_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await get_lifetime_volume(db, bank_account_id)
