import enum
from sqlalchemy import Column, DateTime, Enum, Index, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from stableramp.db.base import Base
from stableramp.db.models.payments import _enum_values


class ActivityType(str, enum.Enum):
    SEND = "send"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"


class ActivityStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class ActivityHistory(Base):
    """User-facing log entry written by the client when it acts.

    Deposits are later patched by settlement, matched on payment_intent_id,
    once the real transaction hash is known.
    """

    __tablename__ = "activity_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_address = Column(String(42), nullable=False)
    activity_type = Column(
        Enum(ActivityType, name="activity_type_enum", values_callable=_enum_values),
        nullable=False,
    )

    token_address = Column(String(42), nullable=True)
    token_symbol = Column(String(32), nullable=True)
    amount = Column(Numeric(18, 6), nullable=False)
    amount_fiat = Column(Numeric(18, 2), nullable=True)
    currency = Column(String(3), nullable=True)

    to_address = Column(String(42), nullable=True)
    from_address = Column(String(42), nullable=True)
    tx_hash = Column(String(66), nullable=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)
    payout_id = Column(String(255), nullable=True)

    status = Column(
        Enum(ActivityStatus, name="activity_status_enum", values_callable=_enum_values),
        nullable=False,
        default=ActivityStatus.SUCCESS,
    )
    memo = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("ix_activity_history_wallet_created", "wallet_address", "created_at"),
    )
