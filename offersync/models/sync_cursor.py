from sqlalchemy import Column, String, DateTime

from offersync.database import Base
from offersync.core.utils import utcnow


class SyncCursor(Base):
    """Where a strategy's stable-order pass stopped. NULL cursor means start from the beginning."""

    __tablename__ = "sync_cursors"

    strategy = Column(String(32), primary_key=True)
    cursor = Column(String(255), nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<SyncCursor(strategy={self.strategy}, cursor={self.cursor})>"
