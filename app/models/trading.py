"""
Market order and open position models for the trading terminal.
"""
import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, ForeignKey, Uuid
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum

from app.core.database import Base


class OrderSide(PyEnum):
    """Order and position side."""
    BUY = "BUY"
    SELL = "SELL"


class OrderType(PyEnum):
    """Order type enumeration."""
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"


class OrderStatus(PyEnum):
    """Order status enumeration."""
    PENDING = "PENDING"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


class PositionStatus(PyEnum):
    """Position status enumeration."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    STOPPED = "STOPPED"


class TradingOrder(Base):
    """Order submitted from the trading terminal."""
    __tablename__ = "trading_orders"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    trading_wallet_id = Column(
        Uuid(as_uuid=True), ForeignKey("trading_wallets.id", ondelete="SET NULL"), nullable=True
    )

    currency_pair = Column(String(20), nullable=False, index=True)
    order_type = Column(Enum(OrderType), nullable=False, default=OrderType.MARKET)
    side = Column(Enum(OrderSide), nullable=False)
    quantity = Column(Numeric(20, 2), nullable=False)
    price = Column(Numeric(20, 5), nullable=True)
    stop_loss = Column(Numeric(20, 5), nullable=True)
    take_profit = Column(Numeric(20, 5), nullable=True)
    time_in_force = Column(String(10), nullable=False, default="GTC")
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<TradingOrder(id={self.id}, pair={self.currency_pair}, side={self.side}, status={self.status})>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "currency_pair": self.currency_pair,
            "order_type": self.order_type.value,
            "side": self.side.value,
            "quantity": float(self.quantity),
            "price": float(self.price) if self.price is not None else None,
            "stop_loss": float(self.stop_loss) if self.stop_loss is not None else None,
            "take_profit": float(self.take_profit) if self.take_profit is not None else None,
            "time_in_force": self.time_in_force,
            "status": self.status.value,
        }


class TradingPosition(Base):
    """
    Position opened by a filled market order.

    ``quantity`` is expressed in units of the base currency; the margin
    reserved at entry is kept so it can be released on close.
    """
    __tablename__ = "trading_positions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    trading_wallet_id = Column(
        Uuid(as_uuid=True), ForeignKey("trading_wallets.id", ondelete="SET NULL"), nullable=True
    )

    currency_pair = Column(String(20), nullable=False, index=True)
    trade_type = Column(Enum(OrderSide), nullable=False)
    entry_price = Column(Numeric(20, 5), nullable=False)
    current_price = Column(Numeric(20, 5), nullable=True)
    stop_loss = Column(Numeric(20, 5), nullable=True)
    take_profit = Column(Numeric(20, 5), nullable=True)
    quantity = Column(Numeric(20, 2), nullable=False)
    margin = Column(Numeric(15, 2), nullable=False, default=0)

    status = Column(Enum(PositionStatus), nullable=False, default=PositionStatus.OPEN, index=True)
    entry_time = Column(DateTime(timezone=True), nullable=False, default=datetime.now)
    exit_time = Column(DateTime(timezone=True), nullable=True)
    exit_price = Column(Numeric(20, 5), nullable=True)
    profit_loss = Column(Numeric(15, 2), nullable=True)
    close_reason = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    trading_wallet = relationship("TradingWallet", back_populates="positions")

    def __repr__(self):
        return f"<TradingPosition(id={self.id}, pair={self.currency_pair}, type={self.trade_type}, status={self.status})>"

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    def unrealized_pnl(self, current_price: float = None) -> float:
        """P&L at the given (or last known) price."""
        price = current_price if current_price is not None else self.current_price
        if price is None:
            return 0.0
        entry = float(self.entry_price)
        quantity = float(self.quantity)
        if self.trade_type == OrderSide.BUY:
            return (float(price) - entry) * quantity
        return (entry - float(price)) * quantity

    def check_stop_loss_hit(self, price: float) -> bool:
        if self.stop_loss is None:
            return False
        if self.trade_type == OrderSide.BUY:
            return price <= float(self.stop_loss)
        return price >= float(self.stop_loss)

    def check_take_profit_hit(self, price: float) -> bool:
        if self.take_profit is None:
            return False
        if self.trade_type == OrderSide.BUY:
            return price >= float(self.take_profit)
        return price <= float(self.take_profit)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "trading_wallet_id": str(self.trading_wallet_id) if self.trading_wallet_id else None,
            "currency_pair": self.currency_pair,
            "trade_type": self.trade_type.value,
            "entry_price": float(self.entry_price),
            "current_price": float(self.current_price) if self.current_price is not None else None,
            "stop_loss": float(self.stop_loss) if self.stop_loss is not None else None,
            "take_profit": float(self.take_profit) if self.take_profit is not None else None,
            "quantity": float(self.quantity),
            "margin": float(self.margin or 0),
            "status": self.status.value,
            "entry_time": self.entry_time.isoformat() if self.entry_time else None,
            "exit_time": self.exit_time.isoformat() if self.exit_time else None,
            "exit_price": float(self.exit_price) if self.exit_price is not None else None,
            "profit_loss": float(self.profit_loss) if self.profit_loss is not None else None,
            "close_reason": self.close_reason,
        }
