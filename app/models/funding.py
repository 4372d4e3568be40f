"""
Connected bank account and funding transaction models.
"""
import uuid
from sqlalchemy import Column, String, Integer, Numeric, DateTime, Enum, Boolean, ForeignKey, Uuid, JSON, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from enum import Enum as PyEnum

from app.core.database import Base


class ConnectedAccountStatus(PyEnum):
    """Connected account status enumeration."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"


class FundingType(PyEnum):
    """Funding transaction direction."""
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"


class FundingStatus(PyEnum):
    """Funding transaction status enumeration."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ConnectedAccount(Base):
    """Bank account linked through an account-aggregation provider."""
    __tablename__ = "connected_accounts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    institution_id = Column(String(100), nullable=True)
    institution_name = Column(String(255), nullable=False)
    account_id = Column(String(100), nullable=False)
    account_name = Column(String(255), nullable=False)
    account_type = Column(String(50), nullable=False, default="depository")
    account_subtype = Column(String(50), nullable=True)
    mask = Column(String(10), nullable=True)

    available_balance = Column(Numeric(15, 2), nullable=False, default=0)
    current_balance = Column(Numeric(15, 2), nullable=False, default=0)
    iso_currency_code = Column(String(3), nullable=False, default="USD")

    status = Column(Enum(ConnectedAccountStatus), nullable=False, default=ConnectedAccountStatus.PENDING)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_default = Column(Boolean, nullable=False, default=False)
    aggregator_item_id = Column(String(100), nullable=True)
    extra_data = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<ConnectedAccount(id={self.id}, institution={self.institution_name}, mask={self.mask})>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "institution_id": self.institution_id,
            "institution_name": self.institution_name,
            "account_name": self.account_name,
            "account_type": self.account_type,
            "account_subtype": self.account_subtype,
            "mask": self.mask,
            "available_balance": float(self.available_balance or 0),
            "current_balance": float(self.current_balance or 0),
            "iso_currency_code": self.iso_currency_code,
            "status": self.status.value,
            "is_verified": bool(self.is_verified),
            "is_default": bool(self.is_default),
        }


class FundingTransaction(Base):
    """
    Transfer between a connected account and a platform wallet.

    Deposits debit the connected account on initiation and credit the
    wallet on completion; withdrawals debit the wallet on initiation and
    credit the connected account on completion.
    """
    __tablename__ = "funding_transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    connected_account_id = Column(
        Uuid(as_uuid=True), ForeignKey("connected_accounts.id", ondelete="SET NULL"), nullable=True
    )
    wallet_id = Column(Uuid(as_uuid=True), ForeignKey("wallets.id", ondelete="SET NULL"), nullable=True)

    transaction_type = Column(Enum(FundingType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    status = Column(Enum(FundingStatus), nullable=False, default=FundingStatus.PENDING, index=True)
    reference_id = Column(String(100), nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    connected_account = relationship("ConnectedAccount")
    wallet = relationship("Wallet")

    def __repr__(self):
        return f"<FundingTransaction(id={self.id}, type={self.transaction_type}, status={self.status})>"

    @property
    def is_pending(self) -> bool:
        return self.status == FundingStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "connected_account_id": str(self.connected_account_id) if self.connected_account_id else None,
            "wallet_id": str(self.wallet_id) if self.wallet_id else None,
            "transaction_type": self.transaction_type.value,
            "amount": float(self.amount),
            "status": self.status.value,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
