"""
Trade model for storing completed trade data.
"""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from app.core.database import Base


class TradeSide(PyEnum):
    """Trade side enumeration."""
    BUY = "buy"
    SELL = "sell"


class Trade(Base):
    """
    Trade model representing an opened or closed trade.

    Trades replicated to copiers point back at the original through
    ``copied_from_trade_id`` and at the relationship that produced them.
    """
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Trade details
    symbol = Column(String(20), nullable=False, index=True)
    type = Column(Enum(TradeSide), nullable=False)
    lot_size = Column(Numeric(10, 2), nullable=False)

    # Prices
    entry_price = Column(Numeric(20, 5), nullable=False)
    exit_price = Column(Numeric(20, 5), nullable=True)
    stop_loss = Column(Numeric(20, 5), nullable=True)
    take_profit = Column(Numeric(20, 5), nullable=True)

    profit = Column(Numeric(15, 2), nullable=True)

    # Timing
    opened_at = Column(DateTime(timezone=True), nullable=False, default=datetime.now)
    closed_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Copy trading links
    copied_from_trade_id = Column(Integer, ForeignKey("trades.id", ondelete="SET NULL"), nullable=True)
    copy_trading_relationship_id = Column(
        Integer, ForeignKey("copy_trading_relationships.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="trades", foreign_keys=[user_id])
    copied_from = relationship("Trade", remote_side=[id])

    def __repr__(self):
        return f"<Trade(id={self.id}, symbol={self.symbol}, type={self.type}, profit={self.profit})>"

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @property
    def is_copy(self) -> bool:
        return self.copied_from_trade_id is not None

    @property
    def duration_minutes(self) -> Optional[int]:
        """Calculate trade duration in minutes."""
        if self.opened_at and self.closed_at:
            delta = self.closed_at - self.opened_at
            return int(delta.total_seconds() / 60)
        return None

    @property
    def is_winner(self) -> Optional[bool]:
        """Check if trade was profitable."""
        if self.profit is not None:
            return float(self.profit) > 0
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "symbol": self.symbol,
            "type": self.type.value,
            "lot_size": float(self.lot_size),
            "entry_price": float(self.entry_price),
            "exit_price": float(self.exit_price) if self.exit_price is not None else None,
            "stop_loss": float(self.stop_loss) if self.stop_loss is not None else None,
            "take_profit": float(self.take_profit) if self.take_profit is not None else None,
            "profit": float(self.profit) if self.profit is not None else None,
            "opened_at": self.opened_at.isoformat() if self.opened_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "copied_from_trade_id": self.copied_from_trade_id,
            "copy_trading_relationship_id": self.copy_trading_relationship_id,
        }
