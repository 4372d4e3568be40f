"""
Wallet and wallet transaction models.
"""
import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, Boolean, ForeignKey, Uuid, JSON, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum

from app.core.database import Base


class CurrencyType(PyEnum):
    """Currency type enumeration."""
    FIAT = "FIAT"
    CRYPTO = "CRYPTO"


class TransactionType(PyEnum):
    """Wallet transaction type enumeration."""
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRADE = "TRADE"
    FEE = "FEE"
    LOCK = "LOCK"
    UNLOCK = "UNLOCK"


class TransactionStatus(PyEnum):
    """Wallet transaction status enumeration."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Wallet(Base):
    """
    Per-user, per-currency balance.

    ``balance`` is the total, ``available_balance`` what can be spent and
    ``locked_balance`` what is reserved; balance = available + locked.
    """
    __tablename__ = "wallets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    currency = Column(String(10), nullable=False)
    currency_type = Column(Enum(CurrencyType), nullable=False, default=CurrencyType.FIAT)

    balance = Column(Numeric(20, 8), nullable=False, default=0)
    available_balance = Column(Numeric(20, 8), nullable=False, default=0)
    locked_balance = Column(Numeric(20, 8), nullable=False, default=0)

    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="wallets")
    transactions = relationship(
        "WalletTransaction", back_populates="wallet", cascade="all, delete-orphan",
        order_by="WalletTransaction.created_at"
    )

    def __repr__(self):
        return f"<Wallet(id={self.id}, currency={self.currency}, balance={self.balance})>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": self.user_id,
            "currency": self.currency,
            "currency_type": self.currency_type.value if self.currency_type else None,
            "balance": float(self.balance or 0),
            "available_balance": float(self.available_balance or 0),
            "locked_balance": float(self.locked_balance or 0),
            "is_default": bool(self.is_default),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class WalletTransaction(Base):
    """
    Ledger row for a wallet balance change.

    Withdrawals and outgoing transfers are stored with a negative amount.
    """
    __tablename__ = "wallet_transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    wallet_id = Column(Uuid(as_uuid=True), ForeignKey("wallets.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    transaction_type = Column(Enum(TransactionType), nullable=False, index=True)
    status = Column(Enum(TransactionStatus), nullable=False, default=TransactionStatus.COMPLETED)
    amount = Column(Numeric(20, 8), nullable=False)
    fee = Column(Numeric(20, 8), nullable=False, default=0)
    description = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_data = Column("metadata", JSON, nullable=True)
    reference_id = Column(String(100), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    wallet = relationship("Wallet", back_populates="transactions")

    def __repr__(self):
        return f"<WalletTransaction(id={self.id}, type={self.transaction_type}, amount={self.amount})>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "wallet_id": str(self.wallet_id),
            "transaction_type": self.transaction_type.value,
            "status": self.status.value if self.status else None,
            "amount": float(self.amount),
            "fee": float(self.fee or 0),
            "description": self.description,
            "metadata": self.extra_data,
            "reference_id": self.reference_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
