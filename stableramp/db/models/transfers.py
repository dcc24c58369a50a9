from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from stableramp.db.base import Base


class TransferRecord(Base):
    """One decoded Transfer / TransferWithMemo log.

    Rows are immutable facts keyed by (tx_hash, log_index). Re-ingesting the
    same log only fills in a memo or block timestamp that was still null.
    Amounts are kept as the ledger's raw integer string.
    """

    __tablename__ = "transfers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_address = Column(String(42), nullable=False)
    from_address = Column(String(42), nullable=False, index=True)
    to_address = Column(String(42), nullable=False, index=True)

    amount_raw = Column(String(80), nullable=False)
    decimals = Column(Integer, nullable=False, default=6)
    memo = Column(String(66), nullable=True)

    tx_hash = Column(String(66), nullable=False)
    log_index = Column(Integer, nullable=False)
    block_number = Column(BigInteger, nullable=False)
    block_timestamp = Column(BigInteger, nullable=True)
    event_name = Column(String(32), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tx_hash", "log_index", name="uq_transfers_tx_log"),
        Index("ix_transfers_block_log", "block_number", "log_index"),
    )
