"""
Trading journal entry model.
"""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, Boolean, ForeignKey, Text, JSON
from sqlalchemy.sql import func
from enum import Enum as PyEnum

from app.core.database import Base


class JournalDirection(PyEnum):
    LONG = "long"
    SHORT = "short"


class JournalOutcome(PyEnum):
    WIN = "win"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


class JournalEntry(Base):
    """Free-form notes about a trade, with optional prices and outcome."""
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    pair = Column(String(20), nullable=False, index=True)
    direction = Column(Enum(JournalDirection), nullable=False)
    entry_price = Column(Numeric(20, 5), nullable=True)
    exit_price = Column(Numeric(20, 5), nullable=True)
    stop_loss = Column(Numeric(20, 5), nullable=True)
    take_profit = Column(Numeric(20, 5), nullable=True)
    risk_reward_ratio = Column(Numeric(8, 2), nullable=True)
    profit_loss = Column(Numeric(15, 2), nullable=True)
    outcome = Column(Enum(JournalOutcome), nullable=True, index=True)

    entry_at = Column(DateTime(timezone=True), nullable=False)
    exit_at = Column(DateTime(timezone=True), nullable=True)

    setup_reason = Column(Text, nullable=True)
    execution_notes = Column(Text, nullable=True)
    post_trade_analysis = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    is_favorite = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<JournalEntry(id={self.id}, pair={self.pair}, outcome={self.outcome})>"

    def to_dict(self) -> dict:
        def _f(value):
            return float(value) if value is not None else None

        return {
            "id": self.id,
            "pair": self.pair,
            "direction": self.direction.value,
            "entry_price": _f(self.entry_price),
            "exit_price": _f(self.exit_price),
            "stop_loss": _f(self.stop_loss),
            "take_profit": _f(self.take_profit),
            "risk_reward_ratio": _f(self.risk_reward_ratio),
            "profit_loss": _f(self.profit_loss),
            "outcome": self.outcome.value if self.outcome else None,
            "entry_at": self.entry_at.isoformat() if self.entry_at else None,
            "exit_at": self.exit_at.isoformat() if self.exit_at else None,
            "setup_reason": self.setup_reason,
            "execution_notes": self.execution_notes,
            "post_trade_analysis": self.post_trade_analysis,
            "tags": self.tags or [],
            "is_favorite": bool(self.is_favorite),
        }
