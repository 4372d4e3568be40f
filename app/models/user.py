"""
User account and social follow models.
"""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum

from app.core.database import Base


class AccountType(PyEnum):
    """Account type enumeration."""
    DEMO = "demo"
    LIVE = "live"


class User(Base):
    """
    Platform user with trading account and risk profile fields.

    The account balance and available margin back market orders placed
    outside a trading wallet; the risk fields drive the risk-management
    dashboard and drawdown alerts.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)

    # Trading account
    account_type = Column(Enum(AccountType), nullable=False, default=AccountType.DEMO)
    account_balance = Column(Numeric(15, 2), nullable=False, default=10000.00)
    available_margin = Column(Numeric(15, 2), nullable=False, default=10000.00)
    leverage = Column(Integer, nullable=False, default=50)

    # Risk profile
    risk_percentage = Column(Numeric(5, 2), nullable=False, default=2.00)
    max_drawdown_percentage = Column(Numeric(5, 2), nullable=False, default=20.00)
    risk_tolerance_level = Column(String(20), nullable=False, default="moderate")

    onboarding_completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    wallets = relationship("Wallet", back_populates="user", cascade="all, delete-orphan")
    trades = relationship(
        "Trade", back_populates="user", cascade="all, delete-orphan",
        foreign_keys="Trade.user_id"
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, account_type={self.account_type})>"

    def default_wallet(self):
        """Return the user's default wallet, if any."""
        for wallet in self.wallets:
            if wallet.is_default:
                return wallet
        return None


class Follow(Base):
    """Follower/following link between two users."""
    __tablename__ = "follows"
    __table_args__ = (UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    following_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Follow(follower_id={self.follower_id}, following_id={self.following_id})>"
