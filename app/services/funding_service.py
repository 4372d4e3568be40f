"""
Funding service for moving money between connected bank accounts and wallets.

Deposits debit the connected account when initiated and credit the wallet
when completed. Withdrawals debit the wallet immediately and credit the
connected account when completed. Only PENDING transactions can be
completed or cancelled; cancelling refunds whichever side was debited.
"""
import logging
import uuid
from datetime import datetime
from typing import Dict, List, Any

from sqlalchemy.orm import Session

from app.core.exceptions import (
    InsufficientFundsError, InvalidStateError, NotFoundError, ValidationError
)
from app.models.funding import (
    ConnectedAccount, ConnectedAccountStatus, FundingTransaction, FundingType, FundingStatus
)
from app.models.wallet import Wallet
from app.services.wallet_service import wallet_service, make_reference, parse_uuid

logger = logging.getLogger(__name__)


class FundingService:
    """Service for connected accounts and funding transactions."""

    def __init__(self, wallets=None):
        self.wallets = wallets or wallet_service

    # Connected accounts

    def link_account(self, db: Session, user_id: int, institution_name: str, account_name: str,
                     account_number_last4: str, current_balance: float, available_balance: float = None,
                     institution_id: str = None, account_type: str = "depository",
                     account_subtype: str = None, iso_currency_code: str = "USD",
                     is_verified: bool = False, aggregator_item_id: str = None) -> ConnectedAccount:
        """Record a bank account linked through the aggregator."""
        self.wallets.get_user(db, user_id)
        if not account_number_last4 or len(account_number_last4) != 4 or not account_number_last4.isdigit():
            raise ValidationError("Account number must be the last 4 digits.")

        is_first = db.query(ConnectedAccount).filter(ConnectedAccount.user_id == user_id).count() == 0

        account = ConnectedAccount(
            id=uuid.uuid4(),
            user_id=user_id,
            institution_id=institution_id,
            institution_name=institution_name,
            account_id=f"acct_{uuid.uuid4().hex[:16]}",
            account_name=account_name,
            account_type=account_type,
            account_subtype=account_subtype,
            mask=account_number_last4,
            current_balance=current_balance,
            available_balance=current_balance if available_balance is None else available_balance,
            iso_currency_code=iso_currency_code.upper(),
            status=ConnectedAccountStatus.ACTIVE if is_verified else ConnectedAccountStatus.PENDING,
            is_verified=is_verified,
            is_default=is_first,
            aggregator_item_id=aggregator_item_id,
            extra_data={},
        )
        db.add(account)
        db.flush()
        logger.info(f"Linked {institution_name} account ****{account_number_last4} for user {user_id}")
        return account

    def get_account(self, db: Session, user_id: int, account_id) -> ConnectedAccount:
        account = db.get(ConnectedAccount, parse_uuid(account_id, "Connected account"))
        if account is None or account.user_id != user_id:
            raise NotFoundError("Connected account", account_id)
        return account

    def list_accounts(self, db: Session, user_id: int, include_inactive: bool = False) -> List[ConnectedAccount]:
        query = db.query(ConnectedAccount).filter(ConnectedAccount.user_id == user_id)
        if not include_inactive:
            query = query.filter(ConnectedAccount.status != ConnectedAccountStatus.INACTIVE)
        return query.order_by(ConnectedAccount.is_default.desc(), ConnectedAccount.institution_name).all()

    def verify_account(self, db: Session, user_id: int, account_id, verification_code: str) -> ConnectedAccount:
        """Mark an account verified; the code check belongs to the aggregator."""
        if not verification_code:
            raise ValidationError("Verification code is required.")
        account = self.get_account(db, user_id, account_id)
        account.is_verified = True
        account.status = ConnectedAccountStatus.ACTIVE
        db.flush()
        return account

    def unlink_account(self, db: Session, user_id: int, account_id) -> ConnectedAccount:
        """Deactivate an account that has no pending transactions."""
        account = self.get_account(db, user_id, account_id)
        pending = db.query(FundingTransaction).filter(
            FundingTransaction.connected_account_id == account.id,
            FundingTransaction.status == FundingStatus.PENDING
        ).count()
        if pending > 0:
            raise InvalidStateError("Cannot remove account with pending transactions.")

        account.status = ConnectedAccountStatus.INACTIVE
        account.is_default = False
        db.flush()
        logger.info(f"Deactivated connected account {account.id} for user {user_id}")
        return account

    # Funding transactions

    def initiate_deposit(self, db: Session, user_id: int, account_id, wallet_id, amount: float,
                         notes: str = None) -> Dict[str, Any]:
        """Debit the connected account and open a PENDING deposit."""
        if amount < 1:
            raise ValidationError("Deposit amount must be at least 1.")
        account = self._usable_account(db, user_id, account_id)
        wallet = self.wallets.get_wallet(db, user_id, wallet_id)

        available = float(account.available_balance or 0)
        if available < amount:
            raise InsufficientFundsError("Insufficient funds in connected account.",
                                         required=amount, available=available)

        transaction = FundingTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            connected_account_id=account.id,
            wallet_id=wallet.id,
            transaction_type=FundingType.DEPOSIT,
            amount=amount,
            status=FundingStatus.PENDING,
            reference_id=make_reference("DEP"),
            notes=notes or f"Deposit from {account.institution_name}",
        )
        db.add(transaction)

        account.available_balance = available - amount
        db.flush()

        logger.info(f"Deposit {transaction.reference_id} of {amount} initiated for user {user_id}")
        return {
            "success": True,
            "transaction": transaction,
            "message": "Deposit initiated successfully. Funds will be available in 1-3 business days.",
        }

    def complete_deposit(self, db: Session, transaction: FundingTransaction) -> Dict[str, Any]:
        """Credit the deposit's wallet (or the default wallet) and mark it COMPLETED."""
        self._require_pending(transaction, "completed")

        wallet = self._target_wallet(db, transaction)
        wallet_transaction = self.wallets.deposit(
            db, wallet, float(transaction.amount), 0,
            "Deposit from connected account",
            {
                "funding_transaction_id": str(transaction.id),
                "connected_account_id": str(transaction.connected_account_id) if transaction.connected_account_id else None,
            },
            transaction.reference_id,
        )

        transaction.status = FundingStatus.COMPLETED
        transaction.completed_at = datetime.now()
        transaction.wallet_id = wallet.id
        db.flush()

        logger.info(f"Deposit {transaction.reference_id} completed into wallet {wallet.id}")
        return {
            "success": True,
            "funding_transaction": transaction,
            "wallet_transaction": wallet_transaction,
            "message": "Deposit completed successfully.",
        }

    def initiate_withdrawal(self, db: Session, user_id: int, wallet_id, account_id, amount: float,
                            notes: str = None) -> Dict[str, Any]:
        """Debit the wallet now and open a PENDING withdrawal."""
        if amount < 1:
            raise ValidationError("Withdrawal amount must be at least 1.")
        account = self._usable_account(db, user_id, account_id)
        wallet = self.wallets.get_wallet(db, user_id, wallet_id)

        available = float(wallet.available_balance or 0)
        if available < amount:
            raise InsufficientFundsError("Insufficient funds in wallet.", required=amount, available=available)

        transaction = FundingTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            connected_account_id=account.id,
            wallet_id=wallet.id,
            transaction_type=FundingType.WITHDRAWAL,
            amount=amount,
            status=FundingStatus.PENDING,
            reference_id=make_reference("WDR"),
            notes=notes or f"Withdrawal to {account.institution_name}",
        )
        db.add(transaction)
        db.flush()

        self.wallets.withdraw(
            db, wallet, amount, 0,
            "Withdrawal to connected account",
            {"funding_transaction_id": str(transaction.id), "connected_account_id": str(account.id)},
            transaction.reference_id,
        )

        logger.info(f"Withdrawal {transaction.reference_id} of {amount} initiated for user {user_id}")
        return {
            "success": True,
            "transaction": transaction,
            "message": "Withdrawal initiated successfully. Funds will be available in your bank account in 1-3 business days.",
        }

    def complete_withdrawal(self, db: Session, transaction: FundingTransaction) -> Dict[str, Any]:
        """Credit the connected account and mark the withdrawal COMPLETED."""
        self._require_pending(transaction, "completed")

        account = transaction.connected_account
        if account is None:
            raise InvalidStateError("Connected account for this withdrawal no longer exists.")

        amount = float(transaction.amount)
        account.available_balance = float(account.available_balance or 0) + amount
        account.current_balance = float(account.current_balance or 0) + amount

        transaction.status = FundingStatus.COMPLETED
        transaction.completed_at = datetime.now()
        db.flush()

        logger.info(f"Withdrawal {transaction.reference_id} completed to account {account.id}")
        return {
            "success": True,
            "transaction": transaction,
            "message": "Withdrawal completed successfully.",
        }

    def complete_transaction(self, db: Session, transaction: FundingTransaction) -> Dict[str, Any]:
        """Complete a deposit or withdrawal according to its type."""
        if transaction.transaction_type == FundingType.DEPOSIT:
            return self.complete_deposit(db, transaction)
        if transaction.transaction_type == FundingType.WITHDRAWAL:
            return self.complete_withdrawal(db, transaction)
        raise ValidationError("Unknown transaction type.")

    def cancel_transaction(self, db: Session, transaction: FundingTransaction) -> Dict[str, Any]:
        """Cancel a PENDING transaction and refund the side already debited."""
        self._require_pending(transaction, "cancelled")
        amount = float(transaction.amount)

        if transaction.transaction_type == FundingType.WITHDRAWAL:
            wallet = self._target_wallet(db, transaction)
            self.wallets.deposit(
                db, wallet, amount, 0,
                "Refund for canceled withdrawal",
                {
                    "funding_transaction_id": str(transaction.id),
                    "connected_account_id": str(transaction.connected_account_id) if transaction.connected_account_id else None,
                },
                f"REFUND-{transaction.reference_id}",
            )
        elif transaction.transaction_type == FundingType.DEPOSIT:
            account = transaction.connected_account
            if account is not None:
                account.available_balance = float(account.available_balance or 0) + amount
            else:
                logger.warning(f"Connected account missing for cancelled deposit {transaction.reference_id}")

        transaction.status = FundingStatus.CANCELLED
        db.flush()

        logger.info(f"Funding transaction {transaction.reference_id} cancelled")
        return {
            "success": True,
            "transaction": transaction,
            "message": "Transaction canceled successfully.",
        }

    def get_transaction(self, db: Session, user_id: int, transaction_id) -> FundingTransaction:
        transaction = db.get(FundingTransaction, parse_uuid(transaction_id, "Funding transaction"))
        if transaction is None or transaction.user_id != user_id:
            raise NotFoundError("Funding transaction", transaction_id)
        return transaction

    def get_transaction_history(self, db: Session, user_id: int, limit: int = 10, offset: int = 0) -> Dict[str, Any]:
        """Paginated funding history, newest first."""
        query = db.query(FundingTransaction).filter(FundingTransaction.user_id == user_id)
        total = query.count()
        transactions = query.order_by(FundingTransaction.created_at.desc()).offset(offset).limit(limit).all()
        return {
            "transactions": [t.to_dict() for t in transactions],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def _usable_account(self, db: Session, user_id: int, account_id) -> ConnectedAccount:
        account = self.get_account(db, user_id, account_id)
        if account.status == ConnectedAccountStatus.INACTIVE:
            raise InvalidStateError("Connected account is inactive.")
        return account

    def _require_pending(self, transaction: FundingTransaction, action: str):
        if transaction.status != FundingStatus.PENDING:
            raise InvalidStateError(f"Only pending transactions can be {action}.")

    def _target_wallet(self, db: Session, transaction: FundingTransaction) -> Wallet:
        wallet = transaction.wallet
        if wallet is None:
            wallet = self.wallets.get_default_wallet(db, transaction.user_id)
        if wallet is None:
            raise NotFoundError("Default wallet")
        return wallet


# Global funding service instance
funding_service = FundingService()
