"""
Tests for connected accounts, deposits and withdrawals.
"""
import pytest

from app.core.exceptions import InsufficientFundsError, InvalidStateError, ValidationError
from app.models.funding import ConnectedAccountStatus, FundingStatus
from app.services.funding_service import funding_service
from app.services.wallet_service import wallet_service


@pytest.fixture
def funded(db, make_user):
    """A user with a USD wallet and a verified bank account holding 5000."""
    user = make_user()
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=1000)
    account = funding_service.link_account(db, user.id, "First Bank", "Checking", "1234", 5000,
                                           is_verified=True)
    return user, wallet, account


def test_link_account_validates_last_four_digits(db, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        funding_service.link_account(db, user.id, "Bank", "Checking", "12a4", 100)

    account = funding_service.link_account(db, user.id, "Bank", "Checking", "9876", 100)
    assert account.status == ConnectedAccountStatus.PENDING
    assert account.is_default
    assert float(account.available_balance) == 100


def test_verify_account_activates_it(db, make_user):
    user = make_user()
    account = funding_service.link_account(db, user.id, "Bank", "Savings", "5555", 100)
    with pytest.raises(ValidationError):
        funding_service.verify_account(db, user.id, account.id, "")

    funding_service.verify_account(db, user.id, account.id, "123456")
    assert account.is_verified
    assert account.status == ConnectedAccountStatus.ACTIVE


def test_deposit_debits_account_then_credits_wallet(db, funded):
    user, wallet, account = funded

    result = funding_service.initiate_deposit(db, user.id, account.id, wallet.id, 400)
    transaction = result["transaction"]
    assert transaction.status == FundingStatus.PENDING
    assert transaction.reference_id.startswith("DEP-")
    assert float(account.available_balance) == 4600
    assert float(wallet.balance) == 1000

    funding_service.complete_transaction(db, transaction)
    assert transaction.status == FundingStatus.COMPLETED
    assert transaction.completed_at is not None
    assert float(wallet.balance) == 1400


def test_deposit_limits(db, funded):
    user, wallet, account = funded
    with pytest.raises(ValidationError):
        funding_service.initiate_deposit(db, user.id, account.id, wallet.id, 0.5)
    with pytest.raises(InsufficientFundsError):
        funding_service.initiate_deposit(db, user.id, account.id, wallet.id, 6000)


def test_cancel_deposit_refunds_connected_account(db, funded):
    user, wallet, account = funded
    transaction = funding_service.initiate_deposit(db, user.id, account.id, wallet.id, 400)["transaction"]

    funding_service.cancel_transaction(db, transaction)

    assert transaction.status == FundingStatus.CANCELLED
    assert float(account.available_balance) == 5000
    assert float(wallet.balance) == 1000
    with pytest.raises(InvalidStateError):
        funding_service.complete_transaction(db, transaction)


def test_withdrawal_debits_wallet_then_credits_account(db, funded):
    user, wallet, account = funded

    transaction = funding_service.initiate_withdrawal(db, user.id, wallet.id, account.id, 250)["transaction"]
    assert transaction.reference_id.startswith("WDR-")
    assert float(wallet.balance) == 750

    funding_service.complete_transaction(db, transaction)
    assert transaction.status == FundingStatus.COMPLETED
    assert float(account.available_balance) == 5250
    assert float(account.current_balance) == 5250


def test_cancel_withdrawal_refunds_wallet(db, funded):
    user, wallet, account = funded
    transaction = funding_service.initiate_withdrawal(db, user.id, wallet.id, account.id, 250)["transaction"]

    funding_service.cancel_transaction(db, transaction)

    assert float(wallet.balance) == 1000
    refunds = wallet_service.get_transactions(db, user.id, transaction_type="deposit")
    assert any(t.reference_id == f"REFUND-{transaction.reference_id}" for t in refunds)
    with pytest.raises(InvalidStateError):
        funding_service.cancel_transaction(db, transaction)


def test_withdrawal_needs_available_funds(db, funded):
    user, wallet, account = funded
    with pytest.raises(InsufficientFundsError):
        funding_service.initiate_withdrawal(db, user.id, wallet.id, account.id, 1001)


def test_unlink_account_blocked_by_pending_transactions(db, funded):
    user, wallet, account = funded
    transaction = funding_service.initiate_deposit(db, user.id, account.id, wallet.id, 100)["transaction"]
    with pytest.raises(InvalidStateError):
        funding_service.unlink_account(db, user.id, account.id)

    funding_service.complete_transaction(db, transaction)
    funding_service.unlink_account(db, user.id, account.id)
    assert account.status == ConnectedAccountStatus.INACTIVE
    assert funding_service.list_accounts(db, user.id) == []
    assert len(funding_service.list_accounts(db, user.id, include_inactive=True)) == 1
    with pytest.raises(InvalidStateError):
        funding_service.initiate_deposit(db, user.id, account.id, wallet.id, 100)


def test_transaction_history_is_paginated(db, funded):
    user, wallet, account = funded
    for amount in (10, 20, 30):
        funding_service.initiate_deposit(db, user.id, account.id, wallet.id, amount)

    history = funding_service.get_transaction_history(db, user.id, limit=2)
    assert history["total"] == 3
    assert len(history["transactions"]) == 2
