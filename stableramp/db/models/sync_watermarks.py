from sqlalchemy import BigInteger, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from stableramp.db.base import Base


class SyncWatermark(Base):
    """Tracks how far the ledger has been scanned for one (user, token) pair.

    ``last_synced_block`` is the last block whose transfer logs are fully
    persisted. It only moves forward, which lets an interrupted sync restart
    from the last completed chunk without skipping a range.
    """

    __tablename__ = "sync_watermarks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_address = Column(String(42), nullable=False)
    token_address = Column(String(42), nullable=False)

    last_synced_block = Column(BigInteger, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_address", "token_address", name="uq_sync_watermarks_user_token"),
    )
