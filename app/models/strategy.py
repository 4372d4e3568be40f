"""
Trading strategy model.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.sql import func

from app.core.database import Base


class TradingStrategy(Base):
    """A named trading approach a user describes and shares on their profile."""
    __tablename__ = "trading_strategies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(50), nullable=True)  # e.g. Scalping, Swing, Day Trading
    risk_level = Column(String(50), nullable=True)
    target_assets = Column(Text, nullable=True)
    timeframe = Column(String(10), nullable=True)  # e.g. M5, H1, D1

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<TradingStrategy(id={self.id}, name={self.name})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "risk_level": self.risk_level,
            "target_assets": self.target_assets,
            "timeframe": self.timeframe,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
