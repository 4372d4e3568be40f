"""
Tests for notification delivery, preferences, price alerts and milestones.
"""
from datetime import datetime, timedelta

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models.notification import AlertCondition, PriceAlert
from app.models.trade import Trade, TradeSide
from app.services.market_data import market_data_service
from app.services.notification_service import (
    NotificationService, notification_service, consecutive_wins, equity_drawdown
)


class RecordingMailer:
    """Mailer stand-in that keeps sent messages."""

    is_configured = True

    def __init__(self):
        self.sent = []

    def render(self, notification_type, data):
        return f"<p>{data.get('message', '')}</p>"

    def send(self, to, subject, html):
        self.sent.append((to, subject))
        return True


def _add_closed_trades(db, user, profits):
    start = datetime.now() - timedelta(days=len(profits))
    for i, profit in enumerate(profits):
        db.add(Trade(
            user_id=user.id, symbol="EUR/USD", type=TradeSide.BUY, lot_size=1,
            entry_price=1.1, exit_price=1.1, profit=profit,
            opened_at=start + timedelta(days=i), closed_at=start + timedelta(days=i, hours=1),
        ))
    db.flush()


def test_preferences_default_to_enabled(db, make_user):
    user = make_user()
    prefs = notification_service.get_preferences(db, user.id).to_dict()
    assert all(prefs.values())
    assert "in_app_notifications" in prefs

    notification_service.update_preferences(db, user.id, {"market_news": False})
    assert notification_service.get_preferences(db, user.id).market_news is False
    with pytest.raises(ValidationError):
        notification_service.update_preferences(db, user.id, {"telepathy": True})


def test_disabled_kind_suppresses_notification(db, make_user):
    user = make_user()
    notification_service.update_preferences(db, user.id, {"new_follower": False})
    assert notification_service.notify(db, user.id, "new_follower", {"message": "hi"}) is None
    assert notification_service.unread_count(db, user.id) == 0

    # Types without a switch are always delivered
    assert notification_service.notify(db, user.id, "copy_trade_started", {"message": "hi"}) is not None


def test_email_channel_uses_mailer(db, make_user):
    mailer = RecordingMailer()
    service = NotificationService(mail=mailer)
    user = make_user()

    service.notify(db, user.id, "trade_executed", {"title": "Trade executed", "message": "BUY"})
    assert mailer.sent == [(user.email, "Trade executed")]

    service.update_preferences(db, user.id, {"email_notifications": False})
    service.notify(db, user.id, "trade_executed", {"title": "Trade executed", "message": "SELL"})
    assert len(mailer.sent) == 1


def test_read_state(db, make_user):
    user = make_user()
    other = make_user()
    first = notification_service.notify(db, user.id, "new_copier", {"message": "a"})
    notification_service.notify(db, user.id, "new_copier", {"message": "b"})
    assert notification_service.unread_count(db, user.id) == 2

    notification_service.mark_as_read(db, user.id, first.id)
    assert notification_service.unread_count(db, user.id) == 1
    with pytest.raises(NotFoundError):
        notification_service.mark_as_read(db, other.id, first.id)

    assert notification_service.mark_all_as_read(db, user.id) == 1
    assert notification_service.list_notifications(db, user.id, unread_only=True) == []


def test_price_alert_validation(db, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        notification_service.create_price_alert(db, user.id, "EUR/USD", "sideways", 1.1)
    with pytest.raises(ValidationError):
        notification_service.create_price_alert(db, user.id, "EUR/USD", "percent_change", 1.1)
    with pytest.raises(ValidationError):
        notification_service.create_price_alert(db, user.id, "EUR/USD", "above", -1)


def test_price_alerts_trigger_once(db, make_user):
    user = make_user()
    above = notification_service.create_price_alert(db, user.id, "eur/usd", "above", 1.12)
    below = notification_service.create_price_alert(db, user.id, "EUR/USD", "below", 1.05)
    moved = notification_service.create_price_alert(db, user.id, "EUR/USD", "percent_change", 1.10,
                                                    percent_change=1)

    market_data_service.pin_price("EUR/USD", 1.125)
    assert notification_service.check_price_alerts(db) == 2
    assert above.is_triggered and moved.is_triggered
    assert not below.is_triggered
    assert notification_service.check_price_alerts(db) == 0

    alerts = notification_service.list_price_alerts(db, user.id)
    assert [a.id for a in alerts["active"]] == [below.id]
    assert len(alerts["triggered"]) == 2
    assert notification_service.unread_count(db, user.id) == 2


class _FailingForUser(NotificationService):
    """Notification service whose deliveries to one user fail."""

    def __init__(self, failing_user_id):
        super().__init__()
        self.failing_user_id = failing_user_id

    def notify(self, db, user_id, *args, **kwargs):
        if user_id == self.failing_user_id:
            raise RuntimeError("delivery failed")
        return super().notify(db, user_id, *args, **kwargs)


def test_failed_alert_is_rolled_back_alone(db, make_user):
    broken = make_user()
    working = make_user()
    failed = notification_service.create_price_alert(db, broken.id, "EUR/USD", "above", 1.12)
    fired = notification_service.create_price_alert(db, working.id, "EUR/USD", "above", 1.12)

    service = _FailingForUser(broken.id)
    assert service.check_price_alerts(db, "EUR/USD", 1.13) == 1

    assert fired.is_triggered
    assert not failed.is_triggered
    assert notification_service.unread_count(db, working.id) == 1
    assert notification_service.unread_count(db, broken.id) == 0


def test_recurring_alert_is_rearmed(db, make_user):
    user = make_user()
    alert = notification_service.create_price_alert(db, user.id, "GBP/USD", "above", 1.25, is_recurring=True)

    assert notification_service.check_price_alerts(db, "GBP/USD", 1.26) == 1

    rearmed = db.query(PriceAlert).filter(PriceAlert.is_triggered.is_(False)).one()
    assert rearmed.id != alert.id
    assert rearmed.condition == AlertCondition.ABOVE
    assert float(rearmed.price) == pytest.approx(1.26)
    assert rearmed.is_recurring


def test_delete_price_alert_is_scoped(db, make_user):
    user = make_user()
    other = make_user()
    alert = notification_service.create_price_alert(db, user.id, "USD/JPY", "below", 140)
    with pytest.raises(NotFoundError):
        notification_service.delete_price_alert(db, other.id, alert.id)
    notification_service.delete_price_alert(db, user.id, alert.id)
    assert notification_service.list_price_alerts(db, user.id)["active"] == []


def test_streak_and_drawdown_helpers():
    assert consecutive_wins([10, 5, -1, 20]) == 2
    assert consecutive_wins([-1, 5]) == 0
    drawdown, peak = equity_drawdown([100, 50, -30])
    assert peak == 150
    assert drawdown == pytest.approx(20.0)
    assert equity_drawdown([-10, -20]) == (0.0, 0.0)


def test_profit_and_streak_milestones(db, make_user):
    user = make_user()
    _add_closed_trades(db, user, [20, 20, 20, 20, 25])

    sent = notification_service.check_performance_milestones(db, user)

    assert "profit_milestone" in sent
    assert "win_streak" in sent
    # Fewer than ten trades never produce a win-rate milestone
    assert "win_rate_milestone" not in sent


def test_win_rate_and_drawdown_milestones(db, make_user):
    user = make_user()
    # 7 of 10 winners; cumulative peak 700 falls to 540
    _add_closed_trades(db, user, [100] * 7 + [-50, -50, -60])

    sent = notification_service.check_performance_milestones(db, user)

    assert "win_rate_milestone" in sent
    assert "drawdown_alert" in sent
    assert "profit_milestone" in sent


def test_check_all_milestones_counts_users(db, make_user):
    trader = make_user()
    make_user()
    _add_closed_trades(db, trader, [150])
    assert notification_service.check_all_milestones(db) == 1
