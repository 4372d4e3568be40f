"""
Trading wallet model for margin accounts.
"""
import uuid
from sqlalchemy import Column, Integer, Numeric, DateTime, Enum, Boolean, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum
from typing import Optional

from app.core.database import Base


class TradingWalletType(PyEnum):
    """Trading wallet type enumeration."""
    DEMO = "DEMO"
    LIVE = "LIVE"


class MarginStatus(PyEnum):
    """Margin health derived from the margin level."""
    HEALTHY = "healthy"
    MARGIN_CALL = "margin_call"
    STOP_OUT = "stop_out"


class TradingWallet(Base):
    """
    Leveraged trading account, one per wallet type per user.

    Equity is balance plus the unrealized P&L of open positions; the margin
    level is equity divided by used margin, as a percentage.
    """
    __tablename__ = "trading_wallets"
    __table_args__ = (UniqueConstraint("user_id", "wallet_type", name="uq_trading_wallets_user_type"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    wallet_type = Column(Enum(TradingWalletType), nullable=False, default=TradingWalletType.DEMO)

    balance = Column(Numeric(15, 2), nullable=False, default=0)
    equity = Column(Numeric(15, 2), nullable=False, default=0)
    available_margin = Column(Numeric(15, 2), nullable=False, default=0)
    used_margin = Column(Numeric(15, 2), nullable=False, default=0)

    leverage = Column(Integer, nullable=False, default=10)
    risk_percentage = Column(Numeric(5, 2), nullable=False, default=2.00)
    margin_call_level = Column(Numeric(5, 2), nullable=False, default=80.00)
    margin_stop_out_level = Column(Numeric(5, 2), nullable=False, default=50.00)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    positions = relationship("TradingPosition", back_populates="trading_wallet")

    def __repr__(self):
        return f"<TradingWallet(id={self.id}, type={self.wallet_type}, balance={self.balance})>"

    @property
    def margin_level(self) -> Optional[float]:
        """Equity over used margin as a percentage; None without used margin."""
        used = float(self.used_margin or 0)
        if used <= 0:
            return None
        return float(self.equity or 0) / used * 100

    @property
    def margin_status(self) -> MarginStatus:
        level = self.margin_level
        if level is None:
            return MarginStatus.HEALTHY
        if level <= float(self.margin_stop_out_level):
            return MarginStatus.STOP_OUT
        if level <= float(self.margin_call_level):
            return MarginStatus.MARGIN_CALL
        return MarginStatus.HEALTHY

    def to_dict(self) -> dict:
        level = self.margin_level
        return {
            "id": str(self.id),
            "wallet_type": self.wallet_type.value,
            "balance": float(self.balance or 0),
            "equity": float(self.equity or 0),
            "available_margin": float(self.available_margin or 0),
            "used_margin": float(self.used_margin or 0),
            "leverage": self.leverage,
            "risk_percentage": float(self.risk_percentage or 0),
            "margin_call_level": float(self.margin_call_level),
            "margin_stop_out_level": float(self.margin_stop_out_level),
            "margin_level": round(level, 2) if level is not None else None,
            "margin_status": self.margin_status.value,
            "is_active": bool(self.is_active),
        }
