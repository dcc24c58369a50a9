# stableramp/domain/activity/schemas.py
from typing import List, Literal, Optional, Union
from pydantic import BaseModel


class TransferItem(BaseModel):
    kind: Literal["transfer"] = "transfer"
    direction: Literal["send", "receive"]
    token_address: str
    amount_raw: str
    decimals: int
    amount: str
    counterparty: str
    tx_hash: str
    block_number: int
    timestamp: Optional[int] = None
    memo: Optional[str] = None
    event_name: str


class PaymentItem(BaseModel):
    kind: Literal["payment"] = "payment"
    direction: Literal["deposit"] = "deposit"
    amount_fiat: str
    currency: str
    amount_usdt: str
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    timestamp: Optional[int] = None
    status: str
    payment_intent_id: str


class CashoutItem(BaseModel):
    kind: Literal["cashout"] = "cashout"
    direction: Literal["withdraw"] = "withdraw"
    amount_usdt: str
    fiat_amount: Optional[str] = None
    currency: str
    tx_hash: str
    timestamp: Optional[int] = None
    status: str
    stripe_bank_account_id: Optional[str] = None


ActivityItem = Union[TransferItem, PaymentItem, CashoutItem]


class ActivityFeed(BaseModel):
    synced_to_block: Optional[int] = None
    items: List[ActivityItem]
