"""
Price alert, notification preference and in-app notification models.
"""
import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, Boolean, ForeignKey, Uuid, JSON
from sqlalchemy.sql import func
from enum import Enum as PyEnum

from app.core.database import Base


class AlertCondition(PyEnum):
    """Price alert trigger condition."""
    ABOVE = "above"
    BELOW = "below"
    PERCENT_CHANGE = "percent_change"


class PriceAlert(Base):
    """
    User price alert on a symbol.

    ``price`` is the trigger level for above/below alerts and the
    reference price for percent-change alerts.
    """
    __tablename__ = "price_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    symbol = Column(String(20), nullable=False, index=True)
    condition = Column(Enum(AlertCondition), nullable=False)
    price = Column(Numeric(20, 5), nullable=False)
    percent_change = Column(Numeric(8, 2), nullable=True)

    is_triggered = Column(Boolean, nullable=False, default=False, index=True)
    triggered_at = Column(DateTime(timezone=True), nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<PriceAlert(id={self.id}, symbol={self.symbol}, condition={self.condition}, price={self.price})>"

    def should_trigger(self, current_price: float) -> bool:
        """Check the alert condition against a price."""
        price = float(self.price)
        if self.condition == AlertCondition.ABOVE:
            return current_price >= price
        if self.condition == AlertCondition.BELOW:
            return current_price <= price
        if self.condition == AlertCondition.PERCENT_CHANGE:
            if price == 0 or self.percent_change is None:
                return False
            change = abs((current_price - price) / price * 100)
            return change >= float(self.percent_change)
        return False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "condition": self.condition.value,
            "price": float(self.price),
            "percent_change": float(self.percent_change) if self.percent_change is not None else None,
            "is_triggered": bool(self.is_triggered),
            "triggered_at": self.triggered_at.isoformat() if self.triggered_at else None,
            "is_recurring": bool(self.is_recurring),
        }


# Notification kinds a user can switch on or off
NOTIFICATION_KINDS = [
    "price_alerts",
    "market_news",
    "trade_executed",
    "trade_closed",
    "stop_loss_hit",
    "take_profit_hit",
    "new_copier",
    "copier_stopped",
    "copy_request_received",
    "copy_request_approved",
    "copy_request_rejected",
    "profit_milestone",
    "loss_milestone",
    "win_streak",
    "drawdown_alert",
    "new_follower",
    "trader_new_trade",
    "trader_performance_update",
]

DELIVERY_CHANNELS = ["email_notifications", "push_notifications", "in_app_notifications"]


class NotificationPreference(Base):
    """Per-user switches for each notification kind and delivery channel."""
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    price_alerts = Column(Boolean, nullable=False, default=True)
    market_news = Column(Boolean, nullable=False, default=True)
    trade_executed = Column(Boolean, nullable=False, default=True)
    trade_closed = Column(Boolean, nullable=False, default=True)
    stop_loss_hit = Column(Boolean, nullable=False, default=True)
    take_profit_hit = Column(Boolean, nullable=False, default=True)
    new_copier = Column(Boolean, nullable=False, default=True)
    copier_stopped = Column(Boolean, nullable=False, default=True)
    copy_request_received = Column(Boolean, nullable=False, default=True)
    copy_request_approved = Column(Boolean, nullable=False, default=True)
    copy_request_rejected = Column(Boolean, nullable=False, default=True)
    profit_milestone = Column(Boolean, nullable=False, default=True)
    loss_milestone = Column(Boolean, nullable=False, default=True)
    win_streak = Column(Boolean, nullable=False, default=True)
    drawdown_alert = Column(Boolean, nullable=False, default=True)
    new_follower = Column(Boolean, nullable=False, default=True)
    trader_new_trade = Column(Boolean, nullable=False, default=True)
    trader_performance_update = Column(Boolean, nullable=False, default=True)

    email_notifications = Column(Boolean, nullable=False, default=True)
    push_notifications = Column(Boolean, nullable=False, default=True)
    in_app_notifications = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<NotificationPreference(user_id={self.user_id})>"

    def allows(self, kind: str) -> bool:
        """Whether a notification kind is enabled; unknown kinds are allowed."""
        if kind not in NOTIFICATION_KINDS:
            return True
        return bool(getattr(self, kind))

    def to_dict(self) -> dict:
        return {name: bool(getattr(self, name)) for name in NOTIFICATION_KINDS + DELIVERY_CHANNELS}


class Notification(Base):
    """Stored in-app notification."""
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(100), nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "type": self.type,
            "data": self.data,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
