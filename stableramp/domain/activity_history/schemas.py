# stableramp/domain/activity_history/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from stableramp.db.models.activity_history import ActivityStatus, ActivityType


class ActivityLogIn(BaseModel):
    wallet_address: str
    activity_type: str
    amount: str
    token_address: Optional[str] = None
    token_symbol: Optional[str] = None
    amount_fiat: Optional[str] = None
    currency: Optional[str] = None
    to_address: Optional[str] = None
    from_address: Optional[str] = None
    tx_hash: Optional[str] = None
    payment_intent_id: Optional[str] = None
    payout_id: Optional[str] = None
    status: Optional[str] = None
    memo: Optional[str] = None


class ActivityHistoryOut(BaseModel):
    id: int
    wallet_address: str
    activity_type: ActivityType
    token_address: Optional[str] = None
    token_symbol: Optional[str] = None
    amount: Decimal
    amount_fiat: Optional[Decimal] = None
    currency: Optional[str] = None
    to_address: Optional[str] = None
    from_address: Optional[str] = None
    tx_hash: Optional[str] = None
    payment_intent_id: Optional[str] = None
    payout_id: Optional[str] = None
    status: ActivityStatus
    memo: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ActivityHistoryPage(BaseModel):
    items: List[ActivityHistoryOut]
    total: int
    limit: int
    offset: int
