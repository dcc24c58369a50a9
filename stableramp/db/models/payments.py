
import enum
from sqlalchemy import BigInteger, Column, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.sql import func

from stableramp.db.base import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Payment(Base):
    """On-ramp payment: a card charge at the processor settled by a custodial token transfer.

    Created ``pending`` with the processor intent, moved to ``processing`` when
    the capture is confirmed, and to ``completed`` only after the on-chain
    transfer is confirmed. A payment with a tx_hash is never processed again.
    """

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_intent_id = Column(String(255), nullable=False, unique=True)
    wallet_address = Column(String(42), nullable=False, index=True)

    amount_fiat = Column(Numeric(18, 2), nullable=False)
    fiat_currency = Column(String(3), nullable=False, default="usd")
    # stablecoin amount; column name predates multi-token support
    amount_usdt = Column(Numeric(18, 6), nullable=False)
    exchange_rate = Column(Numeric(18, 8), nullable=True)

    status = Column(
        Enum(PaymentStatus, name="payment_status_enum", values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    tx_hash = Column(String(66), nullable=True)
    block_number = Column(BigInteger, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)
