"""
Tests for wallet balances, transfers and locked funds.
"""
import pytest

from app.core.exceptions import InsufficientFundsError, InvalidStateError, NotFoundError, ValidationError
from app.models.wallet import TransactionType
from app.services.wallet_service import wallet_service


def test_first_wallet_becomes_default(db, make_user):
    user = make_user()
    usd = wallet_service.create_wallet(db, user.id, "usd", initial_balance=500)
    eur = wallet_service.create_wallet(db, user.id, "EUR")

    assert usd.is_default
    assert not eur.is_default
    assert usd.currency == "USD"
    assert float(usd.balance) == 500
    transactions = wallet_service.get_transactions(db, user.id, wallet_id=usd.id)
    assert [t.transaction_type for t in transactions] == [TransactionType.DEPOSIT]


def test_set_default_clears_other_wallets(db, make_user):
    user = make_user()
    usd = wallet_service.create_wallet(db, user.id, "USD")
    eur = wallet_service.create_wallet(db, user.id, "EUR")

    wallet_service.set_default(db, user.id, eur.id)
    db.refresh(usd)

    assert eur.is_default
    assert not usd.is_default
    assert wallet_service.get_default_wallet(db, user.id).id == eur.id


def test_create_wallet_rejects_bad_input(db, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        wallet_service.create_wallet(db, user.id, "USD", initial_balance=-1)
    with pytest.raises(ValidationError):
        wallet_service.create_wallet(db, user.id, "USD", currency_type="STOCK")
    with pytest.raises(NotFoundError):
        wallet_service.create_wallet(db, 9999, "USD")


def test_deposit_and_withdraw_keep_balance_invariant(db, make_user):
    user = make_user()
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=100)

    wallet_service.deposit(db, wallet, 50)
    withdrawal = wallet_service.withdraw(db, wallet, 30, fee=2)

    assert float(wallet.balance) == pytest.approx(118)
    assert float(wallet.available_balance) == pytest.approx(118)
    assert float(wallet.balance) == pytest.approx(float(wallet.available_balance) + float(wallet.locked_balance))
    assert float(withdrawal.amount) == -30
    assert float(withdrawal.fee) == 2


def test_withdraw_more_than_available(db, make_user):
    user = make_user()
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=100)
    with pytest.raises(InsufficientFundsError):
        wallet_service.withdraw(db, wallet, 99, fee=2)
    with pytest.raises(ValidationError):
        wallet_service.withdraw(db, wallet, 0)
    assert float(wallet.balance) == 100


def test_transfer_moves_funds_with_shared_reference(db, make_user):
    user = make_user()
    source = wallet_service.create_wallet(db, user.id, "USD", initial_balance=1000)
    target = wallet_service.create_wallet(db, user.id, "EUR")

    result = wallet_service.transfer(db, source, target, 200, fee=5)

    assert float(source.balance) == pytest.approx(795)
    assert float(target.balance) == pytest.approx(200)
    outgoing = result["outgoing_transaction"]
    incoming = result["incoming_transaction"]
    assert result["reference_id"].startswith("TRANSFER-")
    assert outgoing.reference_id == incoming.reference_id == result["reference_id"]
    assert outgoing.transaction_type == TransactionType.TRANSFER_OUT
    assert float(outgoing.amount) == -200
    assert float(incoming.fee) == 0


def test_transfer_to_same_wallet_rejected(db, make_user):
    user = make_user()
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=100)
    with pytest.raises(ValidationError):
        wallet_service.transfer(db, wallet, wallet, 10)


def test_lock_and_unlock_funds(db, make_user):
    user = make_user()
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=100)

    wallet_service.lock_funds(db, wallet, 60)
    assert float(wallet.available_balance) == 40
    assert float(wallet.locked_balance) == 60
    assert float(wallet.balance) == 100

    with pytest.raises(InsufficientFundsError):
        wallet_service.lock_funds(db, wallet, 41)
    with pytest.raises(InsufficientFundsError):
        wallet_service.unlock_funds(db, wallet, 61)

    wallet_service.unlock_funds(db, wallet, 60)
    assert float(wallet.available_balance) == 100
    assert float(wallet.locked_balance) == 0


def test_lock_and_unlock_require_positive_amount(db, make_user):
    user = make_user()
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=100)
    wallet_service.lock_funds(db, wallet, 30)

    for amount in (0, -10):
        with pytest.raises(ValidationError):
            wallet_service.lock_funds(db, wallet, amount)
        with pytest.raises(ValidationError):
            wallet_service.unlock_funds(db, wallet, amount)

    assert float(wallet.available_balance) == 70
    assert float(wallet.locked_balance) == 30
    assert float(wallet.balance) == 100


def test_delete_wallet_rules(db, make_user):
    user = make_user()
    only = wallet_service.create_wallet(db, user.id, "USD")
    with pytest.raises(InvalidStateError):
        wallet_service.delete_wallet(db, user.id, only.id)

    funded = wallet_service.create_wallet(db, user.id, "EUR", initial_balance=10)
    with pytest.raises(InvalidStateError):
        wallet_service.delete_wallet(db, user.id, funded.id)

    # Deleting the default hands the flag to the remaining wallet
    wallet_service.delete_wallet(db, user.id, only.id)
    assert wallet_service.get_default_wallet(db, user.id).id == funded.id


def test_wallets_are_scoped_to_owner(db, make_user):
    owner = make_user()
    other = make_user()
    wallet = wallet_service.create_wallet(db, owner.id, "USD")
    with pytest.raises(NotFoundError):
        wallet_service.get_wallet(db, other.id, wallet.id)
    with pytest.raises(NotFoundError):
        wallet_service.get_wallet(db, owner.id, "not-a-uuid")


def test_wallet_summary_totals(db, make_user):
    user = make_user()
    usd = wallet_service.create_wallet(db, user.id, "USD", initial_balance=300)
    wallet_service.create_wallet(db, user.id, "EUR", initial_balance=200)
    wallet_service.lock_funds(db, usd, 100)

    summary = wallet_service.get_wallet_summary(db, user.id)
    assert summary["total_balance"] == pytest.approx(500)
    assert summary["total_available_balance"] == pytest.approx(400)
    assert summary["total_locked_balance"] == pytest.approx(100)
    assert len(summary["wallets"]) == 2
    assert summary["wallets"][0]["is_default"] is True


def test_transaction_filters(db, make_user):
    user = make_user()
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=100)
    wallet_service.withdraw(db, wallet, 10)

    withdrawals = wallet_service.get_transactions(db, user.id, transaction_type="withdrawal")
    assert len(withdrawals) == 1
    with pytest.raises(ValidationError):
        wallet_service.get_transactions(db, user.id, transaction_type="bonus")
