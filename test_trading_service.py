"""
Tests for market orders, position closing and margin monitoring.
"""
import pytest

from app.core.exceptions import (
    InsufficientMarginError, InvalidStateError, NotFoundError, ValidationError
)
from app.models.notification import Notification
from app.models.trading import PositionStatus
from app.models.trading_wallet import MarginStatus
from app.models.wallet import TransactionType
from app.services.market_data import market_data_service
from app.services.notification_service import notification_service
from app.services.trading_service import trading_service
from app.services.wallet_service import wallet_service


def _notification_types(db, user_id):
    return [n.type for n in db.query(Notification).filter(Notification.user_id == user_id).all()]


def test_market_order_reserves_account_margin(db, make_user):
    user = make_user(balance=10000, leverage=50)
    market_data_service.pin_price("EUR/USD", 1.1)

    result = trading_service.place_market_order(db, user.id, "eurusd", "buy", 10000, stop_loss=1.09)

    position = result["position"]
    assert result["margin_required"] == pytest.approx(220.0)
    assert position.currency_pair == "EUR/USD"
    assert position.status == PositionStatus.OPEN
    assert float(position.entry_price) == pytest.approx(1.1)
    assert float(user.available_margin) == pytest.approx(9780.0)
    assert "trade_executed" in _notification_types(db, user.id)


def test_market_order_validation(db, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        trading_service.place_market_order(db, user.id, "XXX/YYY", "BUY", 1000)
    with pytest.raises(ValidationError):
        trading_service.place_market_order(db, user.id, "EUR/USD", "HOLD", 1000)
    with pytest.raises(ValidationError):
        trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 0)


def test_market_order_needs_free_margin(db, make_user):
    user = make_user(balance=100, leverage=10)
    market_data_service.pin_price("EUR/USD", 1.1)
    with pytest.raises(InsufficientMarginError) as excinfo:
        trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 10000)
    assert excinfo.value.required == pytest.approx(1100.0)
    assert excinfo.value.available == pytest.approx(100.0)


def test_close_position_settles_account_and_default_wallet(db, make_user):
    user = make_user(balance=10000, leverage=50)
    wallet = wallet_service.create_wallet(db, user.id, "USD", initial_balance=10000)
    market_data_service.pin_price("EUR/USD", 1.1)
    position = trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 10000)["position"]

    market_data_service.pin_price("EUR/USD", 1.105)
    result = trading_service.close_position(db, user.id, position.id)

    assert result["profit_loss"] == pytest.approx(50.0)
    assert position.status == PositionStatus.CLOSED
    assert position.close_reason == "manual"
    assert float(user.account_balance) == pytest.approx(10050.0)
    assert float(user.available_margin) == pytest.approx(10000.0)
    assert float(wallet.balance) == pytest.approx(10050.0)
    trades = wallet_service.get_transactions(db, user.id, transaction_type="trade")
    assert [t.transaction_type for t in trades] == [TransactionType.TRADE]

    with pytest.raises(InvalidStateError):
        trading_service.close_position(db, user.id, position.id)


def test_positions_are_scoped_to_owner(db, make_user):
    owner = make_user()
    other = make_user()
    market_data_service.pin_price("GBP/USD", 1.25)
    position = trading_service.place_market_order(db, owner.id, "GBP/USD", "SELL", 1000)["position"]
    with pytest.raises(NotFoundError):
        trading_service.close_position(db, other.id, position.id)
    assert trading_service.get_positions(db, other.id) == []
    assert len(trading_service.get_positions(db, owner.id, "open")) == 1


def test_trading_wallet_one_per_type(db, make_user):
    user = make_user()
    demo = trading_service.create_trading_wallet(db, user.id, "demo", 1000)
    assert demo.leverage == 10
    assert float(demo.available_margin) == 1000
    with pytest.raises(InvalidStateError):
        trading_service.create_trading_wallet(db, user.id, "DEMO", 500)
    with pytest.raises(ValidationError):
        trading_service.create_trading_wallet(db, user.id, "PAPER", 500)
    trading_service.create_trading_wallet(db, user.id, "LIVE", 0)
    assert len(trading_service.list_trading_wallets(db, user.id)) == 2


def test_trading_wallet_order_updates_margin(db, make_user):
    user = make_user()
    trading_wallet = trading_service.create_trading_wallet(db, user.id, "DEMO", 1000)
    market_data_service.pin_price("EUR/USD", 1.1)

    with pytest.raises(InsufficientMarginError):
        trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 10000,
                                           trading_wallet_id=trading_wallet.id)

    trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 5000,
                                       trading_wallet_id=str(trading_wallet.id))
    assert float(trading_wallet.used_margin) == pytest.approx(550.0)
    assert float(trading_wallet.available_margin) == pytest.approx(450.0)
    assert trading_wallet.margin_level == pytest.approx(1000 / 550 * 100)
    # The account margin is untouched
    assert float(user.available_margin) == pytest.approx(10000.0)


def test_monitor_closes_positions_at_stop_loss_and_take_profit(db, make_user):
    user = make_user()
    market_data_service.pin_price("EUR/USD", 1.1)
    market_data_service.pin_price("USD/JPY", 150.0)
    losing = trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 1000, stop_loss=1.095)["position"]
    winning = trading_service.place_market_order(db, user.id, "USD/JPY", "SELL", 100, take_profit=149.0)["position"]

    market_data_service.pin_price("EUR/USD", 1.09)
    market_data_service.pin_price("USD/JPY", 148.5)
    result = trading_service.monitor_open_positions(db)

    assert result["checked"] == 2
    assert result["stop_loss"] == 1
    assert result["take_profit"] == 1
    assert losing.status == PositionStatus.STOPPED
    assert losing.close_reason == "stop_loss"
    assert winning.status == PositionStatus.CLOSED
    assert float(winning.profit_loss) == pytest.approx(150.0)


def test_margin_call_notifies_once(db, make_user):
    user = make_user()
    trading_wallet = trading_service.create_trading_wallet(db, user.id, "DEMO", 1000)
    market_data_service.pin_price("EUR/USD", 1.1)
    trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 5000, trading_wallet_id=trading_wallet.id)

    # Equity 400 against 550 used margin
    market_data_service.pin_price("EUR/USD", 0.98)
    first = trading_service.monitor_open_positions(db)
    second = trading_service.monitor_open_positions(db)

    assert trading_wallet.margin_status == MarginStatus.MARGIN_CALL
    assert first["margin_calls"] == 1
    assert second["margin_calls"] == 1
    assert _notification_types(db, user.id).count("margin_call") == 1


def test_stop_out_closes_losing_positions(db, make_user):
    user = make_user()
    trading_wallet = trading_service.create_trading_wallet(db, user.id, "DEMO", 1000)
    market_data_service.pin_price("EUR/USD", 1.1)
    position = trading_service.place_market_order(
        db, user.id, "EUR/USD", "BUY", 5000, trading_wallet_id=trading_wallet.id
    )["position"]

    # Equity 250 against 550 used margin
    market_data_service.pin_price("EUR/USD", 0.95)
    result = trading_service.monitor_open_positions(db)

    assert result["stop_out"] == 1
    assert position.status == PositionStatus.STOPPED
    assert position.close_reason == "stop_out"
    assert float(trading_wallet.balance) == pytest.approx(250.0)
    assert float(trading_wallet.used_margin) == 0
    assert trading_wallet.margin_status == MarginStatus.HEALTHY
    assert "stop_out" in _notification_types(db, user.id)


def test_trade_closed_notification_respects_preferences(db, make_user):
    user = make_user()
    notification_service.update_preferences(db, user.id, {"trade_closed": False, "stop_loss_hit": True})
    market_data_service.pin_price("EUR/USD", 1.1)
    manual = trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 1000)["position"]
    stopped = trading_service.place_market_order(db, user.id, "EUR/USD", "BUY", 1000, stop_loss=1.095)["position"]

    trading_service.close_position(db, user.id, manual.id)
    assert "trade_closed" not in _notification_types(db, user.id)

    trading_service.close_position(db, user.id, stopped.id, reason="stop_loss", exit_price=1.09)
    assert _notification_types(db, user.id).count("trade_closed") == 1
