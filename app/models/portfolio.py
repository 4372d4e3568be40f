"""
Portfolio holding model.
"""
import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Text, Uuid, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base


class PortfolioPosition(Base):
    """
    A holding the user tracks outside the trading book.

    One row per user and symbol; adding to a held symbol averages the
    price instead of creating a second row.
    """
    __tablename__ = "portfolio_positions"
    __table_args__ = (UniqueConstraint("user_id", "symbol", name="uq_portfolio_positions_user_symbol"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    symbol = Column(String(20), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    quantity = Column(Numeric(18, 8), nullable=False)
    average_price = Column(Numeric(18, 5), nullable=False)
    category = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<PortfolioPosition(user_id={self.user_id}, symbol={self.symbol}, quantity={self.quantity})>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "symbol": self.symbol,
            "name": self.name,
            "quantity": float(self.quantity),
            "average_price": float(self.average_price),
            "category": self.category,
            "notes": self.notes,
        }
