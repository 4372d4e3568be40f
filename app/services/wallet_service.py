"""
Wallet service for balances, transfers and locked funds.

Every mutation is flushed into the caller's session; the caller commits
so that multi-step operations succeed or roll back together.
"""
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Any

from sqlalchemy.orm import Session

from app.core.exceptions import (
    InsufficientFundsError, InvalidStateError, NotFoundError, ValidationError
)
from app.models.user import User
from app.models.wallet import (
    Wallet, WalletTransaction, CurrencyType, TransactionType, TransactionStatus
)

logger = logging.getLogger(__name__)


def make_reference(prefix: str) -> str:
    """Unique reference id such as TRANSFER-5F3A9C2B71D4."""
    return f"{prefix}-{uuid.uuid4().hex[:12].upper()}"


def parse_uuid(value, resource: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(resource, value)


class WalletService:
    """Service for managing user wallets and their transaction ledger."""

    def get_user(self, db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def get_wallet(self, db: Session, user_id: int, wallet_id) -> Wallet:
        """Fetch a wallet owned by the user."""
        wallet = db.get(Wallet, parse_uuid(wallet_id, "Wallet"))
        if wallet is None or wallet.user_id != user_id:
            raise NotFoundError("Wallet", wallet_id)
        return wallet

    def get_default_wallet(self, db: Session, user_id: int) -> Optional[Wallet]:
        return db.query(Wallet).filter(
            Wallet.user_id == user_id,
            Wallet.is_default.is_(True)
        ).first()

    def list_wallets(self, db: Session, user_id: int) -> List[Wallet]:
        return db.query(Wallet).filter(Wallet.user_id == user_id).order_by(
            Wallet.is_default.desc(), Wallet.currency
        ).all()

    def create_wallet(self, db: Session, user_id: int, currency: str, currency_type: str = "FIAT",
                      is_default: bool = False, initial_balance: float = 0) -> Wallet:
        """
        Create a wallet for a user.

        The user's first wallet is always the default. A positive initial
        balance is recorded as a completed DEPOSIT.
        """
        self.get_user(db, user_id)
        if initial_balance < 0:
            raise ValidationError("Initial balance cannot be negative.")
        try:
            kind = CurrencyType(currency_type.upper())
        except ValueError:
            raise ValidationError(f"Unsupported currency type: {currency_type}")

        is_first = db.query(Wallet).filter(Wallet.user_id == user_id).count() == 0

        wallet = Wallet(
            id=uuid.uuid4(),
            user_id=user_id,
            currency=currency.upper(),
            currency_type=kind,
            balance=initial_balance,
            available_balance=initial_balance,
            locked_balance=0,
            is_default=is_first or is_default,
        )
        db.add(wallet)
        db.flush()

        if wallet.is_default:
            self._clear_other_defaults(db, wallet)

        if initial_balance > 0:
            self._record(db, wallet, TransactionType.DEPOSIT, initial_balance,
                         description="Initial wallet funding")

        logger.info(f"Created {wallet.currency} wallet {wallet.id} for user {user_id}")
        return wallet

    def set_default(self, db: Session, user_id: int, wallet_id) -> Wallet:
        wallet = self.get_wallet(db, user_id, wallet_id)
        wallet.is_default = True
        self._clear_other_defaults(db, wallet)
        db.flush()
        return wallet

    def delete_wallet(self, db: Session, user_id: int, wallet_id) -> None:
        """Delete an empty wallet; the only default wallet cannot be removed."""
        wallet = self.get_wallet(db, user_id, wallet_id)
        if float(wallet.balance or 0) != 0:
            raise InvalidStateError("Cannot delete wallet with balance.")

        others = db.query(Wallet).filter(Wallet.user_id == user_id, Wallet.id != wallet.id).all()
        if wallet.is_default and others:
            # Hand the default flag to the next wallet
            others[0].is_default = True
        elif wallet.is_default:
            raise InvalidStateError("Cannot delete your only default wallet.")

        db.delete(wallet)
        db.flush()
        logger.info(f"Deleted wallet {wallet_id} for user {user_id}")

    def deposit(self, db: Session, wallet: Wallet, amount: float, fee: float = 0,
                description: str = "Deposit", metadata: Dict[str, Any] = None,
                reference_id: str = None) -> WalletTransaction:
        """Credit a wallet."""
        if amount <= 0:
            raise ValidationError("Deposit amount must be positive.")

        wallet.balance = float(wallet.balance or 0) + amount
        wallet.available_balance = float(wallet.available_balance or 0) + amount

        transaction = self._record(db, wallet, TransactionType.DEPOSIT, amount, fee=fee,
                                   description=description, metadata=metadata,
                                   reference_id=reference_id)
        logger.info(f"Deposited {amount} {wallet.currency} into wallet {wallet.id}")
        return transaction

    def withdraw(self, db: Session, wallet: Wallet, amount: float, fee: float = 0,
                 description: str = "Withdrawal", metadata: Dict[str, Any] = None,
                 reference_id: str = None) -> WalletTransaction:
        """Debit a wallet; amount plus fee must be available."""
        if amount <= 0:
            raise ValidationError("Withdrawal amount must be positive.")

        total = amount + fee
        available = float(wallet.available_balance or 0)
        if available < total:
            raise InsufficientFundsError("Insufficient funds available for withdrawal.",
                                         required=total, available=available)

        wallet.balance = float(wallet.balance or 0) - total
        wallet.available_balance = available - total

        transaction = self._record(db, wallet, TransactionType.WITHDRAWAL, -amount, fee=fee,
                                   description=description, metadata=metadata,
                                   reference_id=reference_id)
        logger.info(f"Withdrew {amount} {wallet.currency} from wallet {wallet.id}")
        return transaction

    def transfer(self, db: Session, from_wallet: Wallet, to_wallet: Wallet, amount: float,
                 fee: float = 0, description: str = "Transfer") -> Dict[str, Any]:
        """
        Move funds between two wallets.

        Both legs share one TRANSFER- reference id; the fee is charged to
        the source only.
        """
        if from_wallet.id == to_wallet.id:
            raise ValidationError("Cannot transfer to the same wallet.")
        if amount <= 0:
            raise ValidationError("Transfer amount must be positive.")

        total = amount + fee
        available = float(from_wallet.available_balance or 0)
        if available < total:
            raise InsufficientFundsError("Insufficient funds available for transfer.",
                                         required=total, available=available)

        reference_id = make_reference("TRANSFER")

        from_wallet.balance = float(from_wallet.balance or 0) - total
        from_wallet.available_balance = available - total
        outgoing = self._record(db, from_wallet, TransactionType.TRANSFER_OUT, -amount, fee=fee,
                                description=description,
                                metadata={"to_wallet_id": str(to_wallet.id), "to_currency": to_wallet.currency},
                                reference_id=reference_id)

        to_wallet.balance = float(to_wallet.balance or 0) + amount
        to_wallet.available_balance = float(to_wallet.available_balance or 0) + amount
        incoming = self._record(db, to_wallet, TransactionType.TRANSFER_IN, amount, fee=0,
                                description=description,
                                metadata={"from_wallet_id": str(from_wallet.id), "from_currency": from_wallet.currency},
                                reference_id=reference_id)

        logger.info(f"Transferred {amount} from wallet {from_wallet.id} to {to_wallet.id} ({reference_id})")
        return {
            "success": True,
            "reference_id": reference_id,
            "outgoing_transaction": outgoing,
            "incoming_transaction": incoming,
            "message": "Transfer completed successfully.",
        }

    def lock_funds(self, db: Session, wallet: Wallet, amount: float, reason: str = "Trading margin",
                   reference_id: str = None) -> Wallet:
        """Move funds from available to locked."""
        if amount is None or amount <= 0:
            raise ValidationError("Lock amount must be positive.")
        available = float(wallet.available_balance or 0)
        if available < amount:
            raise InsufficientFundsError("Insufficient funds available to lock.",
                                         required=amount, available=available)

        wallet.available_balance = available - amount
        wallet.locked_balance = float(wallet.locked_balance or 0) + amount
        self._record(db, wallet, TransactionType.LOCK, amount, description=f"Funds locked: {reason}",
                     metadata={"reason": reason}, reference_id=reference_id)
        return wallet

    def unlock_funds(self, db: Session, wallet: Wallet, amount: float,
                     reason: str = "Trading margin released", reference_id: str = None) -> Wallet:
        """Move funds from locked back to available."""
        if amount is None or amount <= 0:
            raise ValidationError("Unlock amount must be positive.")
        locked = float(wallet.locked_balance or 0)
        if locked < amount:
            raise InsufficientFundsError("Insufficient locked funds to unlock.",
                                         required=amount, available=locked)

        wallet.available_balance = float(wallet.available_balance or 0) + amount
        wallet.locked_balance = locked - amount
        self._record(db, wallet, TransactionType.UNLOCK, amount, description=f"Funds unlocked: {reason}",
                     metadata={"reason": reason}, reference_id=reference_id)
        return wallet

    def settle_trade(self, db: Session, wallet: Wallet, profit_loss: float, description: str = "Trade settlement",
                     metadata: Dict[str, Any] = None, reference_id: str = None) -> Optional[WalletTransaction]:
        """Apply realized trading P&L; losses may take the balance below zero."""
        if profit_loss == 0:
            return None
        wallet.balance = float(wallet.balance or 0) + profit_loss
        wallet.available_balance = float(wallet.available_balance or 0) + profit_loss
        return self._record(db, wallet, TransactionType.TRADE, profit_loss, description=description,
                            metadata=metadata, reference_id=reference_id)

    def get_wallet_summary(self, db: Session, user_id: int) -> Dict[str, Any]:
        """Totals across all of a user's wallets."""
        wallets = self.list_wallets(db, user_id)
        summary = {
            "total_balance": 0.0,
            "total_available_balance": 0.0,
            "total_locked_balance": 0.0,
            "wallets": [],
            "timestamp": datetime.now().isoformat(),
        }
        for wallet in wallets:
            summary["total_balance"] += float(wallet.balance or 0)
            summary["total_available_balance"] += float(wallet.available_balance or 0)
            summary["total_locked_balance"] += float(wallet.locked_balance or 0)
            summary["wallets"].append(wallet.to_dict())
        return summary

    def get_transactions(self, db: Session, user_id: int, wallet_id=None, transaction_type: str = None,
                         date_from: datetime = None, date_to: datetime = None,
                         limit: int = 50, offset: int = 0) -> List[WalletTransaction]:
        """Transaction history, newest first, with optional filters."""
        query = db.query(WalletTransaction).filter(WalletTransaction.user_id == user_id)
        if wallet_id is not None:
            query = query.filter(WalletTransaction.wallet_id == parse_uuid(wallet_id, "Wallet"))
        if transaction_type:
            try:
                query = query.filter(WalletTransaction.transaction_type == TransactionType(transaction_type.upper()))
            except ValueError:
                raise ValidationError(f"Unknown transaction type: {transaction_type}")
        if date_from:
            query = query.filter(WalletTransaction.created_at >= date_from)
        if date_to:
            query = query.filter(WalletTransaction.created_at <= date_to)
        return query.order_by(WalletTransaction.created_at.desc()).offset(offset).limit(limit).all()

    def _clear_other_defaults(self, db: Session, wallet: Wallet):
        db.query(Wallet).filter(
            Wallet.user_id == wallet.user_id,
            Wallet.id != wallet.id
        ).update({Wallet.is_default: False}, synchronize_session="fetch")

    def _record(self, db: Session, wallet: Wallet, transaction_type: TransactionType, amount: float,
                fee: float = 0, description: str = None, metadata: Dict[str, Any] = None,
                reference_id: str = None) -> WalletTransaction:
        transaction = WalletTransaction(
            id=uuid.uuid4(),
            wallet_id=wallet.id,
            user_id=wallet.user_id,
            transaction_type=transaction_type,
            status=TransactionStatus.COMPLETED,
            amount=amount,
            fee=fee,
            description=description,
            extra_data=metadata or {},
            reference_id=reference_id,
        )
        db.add(transaction)
        db.flush()
        return transaction


# Global wallet service instance
wallet_service = WalletService()
