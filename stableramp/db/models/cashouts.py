import enum
from sqlalchemy import Column, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from stableramp.db.base import Base
from stableramp.db.models.payments import _enum_values


class CashoutStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELED = "canceled"


class Cashout(Base):
    """Off-ramp payout. The user's on-chain transfer to the custodial wallet
    (tx_hash_onchain) happens before the bank payout is requested, so payout
    events only ever move the status."""

    __tablename__ = "cashouts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_address = Column(String(42), nullable=False, index=True)

    amount_usdt = Column(Numeric(18, 6), nullable=False)
    fiat_currency = Column(String(3), nullable=False, default="usd")
    fiat_amount = Column(Numeric(18, 2), nullable=True)
    exchange_rate = Column(Numeric(18, 8), nullable=True)

    tx_hash_onchain = Column(String(66), nullable=False, unique=True)
    payout_id_stripe = Column(String(255), nullable=True, unique=True)
    stripe_bank_account_id = Column(String(255), nullable=True, index=True)

    status = Column(
        Enum(CashoutStatus, name="cashout_status_enum", values_callable=_enum_values),
        nullable=False,
        default=CashoutStatus.PENDING,
    )
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
