# stableramp/domain/cashouts/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from stableramp.db.models.cashouts import CashoutStatus


class CashoutRequest(BaseModel):
    employee_address: str
    tx_hash: str
    fiat_currency: str = "usd"
    stripe_bank_account_id: Optional[str] = None
    exchange_rate: Optional[str] = None


class CashoutOut(BaseModel):
    id: int
    employee_address: str
    amount_usdt: Decimal
    fiat_currency: str
    fiat_amount: Optional[Decimal] = None
    exchange_rate: Optional[Decimal] = None
    tx_hash_onchain: str
    payout_id_stripe: Optional[str] = None
    stripe_bank_account_id: Optional[str] = None
    status: CashoutStatus
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CashoutHistory(BaseModel):
    cashouts: List[CashoutOut]
    total: int
    page: int
    limit: int
    total_pages: int


class LifetimeVolume(BaseModel):
    stripe_bank_account_id: str
    total_volume: str
