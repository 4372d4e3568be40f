"""
Copy trading relationship and trader settings models.
"""
from sqlalchemy import Column, Integer, Numeric, DateTime, Enum, Boolean, ForeignKey, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum

from app.core.database import Base


class CopyStatus(PyEnum):
    """Relationship status enumeration."""
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"


class ApprovalStatus(PyEnum):
    """Trader approval state for a copy request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PrivacyLevel(PyEnum):
    """Who may copy a trader."""
    PUBLIC = "public"
    FOLLOWERS_ONLY = "followers_only"
    APPROVED_ONLY = "approved_only"
    PRIVATE = "private"


class CopyTradingRelationship(Base):
    """
    Copier/trader link describing how the trader's trades are mirrored.

    Lot sizes are scaled by ``risk_allocation_percentage`` unless
    ``copy_fixed_size`` is set together with a ``fixed_lot_size``.
    """
    __tablename__ = "copy_trading_relationships"

    id = Column(Integer, primary_key=True, autoincrement=True)
    copier_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    trader_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(Enum(CopyStatus), nullable=False, default=CopyStatus.ACTIVE, index=True)
    approval_status = Column(Enum(ApprovalStatus), nullable=False, default=ApprovalStatus.APPROVED)

    # Sizing and risk
    risk_allocation_percentage = Column(Numeric(5, 2), nullable=False, default=100.00)
    max_drawdown_percentage = Column(Numeric(5, 2), nullable=True)
    copy_fixed_size = Column(Boolean, nullable=False, default=False)
    fixed_lot_size = Column(Numeric(10, 2), nullable=True)
    copy_stop_loss = Column(Boolean, nullable=False, default=True)
    copy_take_profit = Column(Boolean, nullable=False, default=True)

    started_at = Column(DateTime(timezone=True), nullable=True)
    stopped_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    copier = relationship("User", foreign_keys=[copier_user_id])
    trader = relationship("User", foreign_keys=[trader_user_id])
    copied_trades = relationship("Trade", foreign_keys="Trade.copy_trading_relationship_id")

    def __repr__(self):
        return (f"<CopyTradingRelationship(id={self.id}, copier={self.copier_user_id}, "
                f"trader={self.trader_user_id}, status={self.status})>")

    @property
    def is_active(self) -> bool:
        return self.status == CopyStatus.ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "copier_user_id": self.copier_user_id,
            "trader_user_id": self.trader_user_id,
            "status": self.status.value,
            "approval_status": self.approval_status.value,
            "risk_allocation_percentage": float(self.risk_allocation_percentage),
            "max_drawdown_percentage": (
                float(self.max_drawdown_percentage) if self.max_drawdown_percentage is not None else None
            ),
            "copy_fixed_size": bool(self.copy_fixed_size),
            "fixed_lot_size": float(self.fixed_lot_size) if self.fixed_lot_size is not None else None,
            "copy_stop_loss": bool(self.copy_stop_loss),
            "copy_take_profit": bool(self.copy_take_profit),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
        }


class CopyTradingSettings(Base):
    """Per-trader copy trading privacy settings."""
    __tablename__ = "copy_trading_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    privacy_level = Column(Enum(PrivacyLevel), nullable=False, default=PrivacyLevel.PUBLIC)
    auto_approve_followers = Column(Boolean, nullable=False, default=True)
    notify_on_copy_request = Column(Boolean, nullable=False, default=True)
    copy_trading_bio = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<CopyTradingSettings(user_id={self.user_id}, privacy={self.privacy_level})>"

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "privacy_level": self.privacy_level.value,
            "auto_approve_followers": bool(self.auto_approve_followers),
            "notify_on_copy_request": bool(self.notify_on_copy_request),
            "copy_trading_bio": self.copy_trading_bio,
        }
