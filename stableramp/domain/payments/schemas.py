# stableramp/domain/payments/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from stableramp.db.models.payments import PaymentStatus


class PaymentIntentCreate(BaseModel):
    wallet_address: str
    amount: str
    currency: str = "usd"
    token_symbol: str
    token_address: Optional[str] = None
    fiat_amount: Optional[str] = None


class PaymentIntentOut(BaseModel):
    payment_intent_id: str
    client_secret: Optional[str] = None
    amount: str
    currency: str
    amount_stablecoin: str
    token_symbol: str
    token_address: str
    exchange_rate: str
    wallet_address: str
    status: PaymentStatus


class PaymentOut(BaseModel):
    id: int
    payment_intent_id: str
    wallet_address: str
    amount_fiat: Decimal
    fiat_currency: str
    amount_usdt: Decimal
    exchange_rate: Optional[Decimal] = None
    status: PaymentStatus
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    error_message: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentHistory(BaseModel):
    payments: List[PaymentOut]
    total: int
    page: int
    limit: int
    total_pages: int


class OfframpBalance(BaseModel):
    address: str
    token_address: str
    balance: str
    decimals: int
