"""
Watchlist model.
"""
import uuid
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base


class Watchlist(Base):
    """A symbol a user watches; one row per user and symbol."""
    __tablename__ = "watchlists"
    __table_args__ = (UniqueConstraint("user_id", "symbol", name="uq_watchlists_user_symbol"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(20), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Watchlist(user_id={self.user_id}, symbol={self.symbol})>"
