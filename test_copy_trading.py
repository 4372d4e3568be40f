"""
Tests for copy trading relationships, privacy rules and trade replication.
"""
from datetime import datetime, timedelta

import pytest

from app.core.exceptions import (
    CopyTradingNotAllowedError, InvalidStateError, NotAuthorizedError, ValidationError
)
from app.models.copy_trading import ApprovalStatus, CopyStatus
from app.models.notification import Notification
from app.models.trade import Trade
from app.models.user import Follow
from app.services.copy_trading import CopyTradingService, copy_trading_service, trading_style
from app.services.notification_service import notification_service


def _types(db, user_id):
    return [n.type for n in db.query(Notification).filter(Notification.user_id == user_id).all()]


def _closed_trade(db, trader, entry=1.1000, exit_price=1.1050, lot=1.0, side="buy", **fields):
    opened = datetime.now() - timedelta(hours=2)
    return copy_trading_service.record_trade(db, trader.id, "EUR/USD", side, entry, lot,
                                             exit_price=exit_price, opened_at=opened,
                                             closed_at=datetime.now(), **fields)


def test_public_trader_is_copied_immediately(db, make_user):
    trader = make_user("Alice")
    copier = make_user("Bob")

    result = copy_trading_service.start_copying(db, copier.id, trader.id, 50)
    relationship = result["relationship"]

    assert relationship.status == CopyStatus.ACTIVE
    assert relationship.approval_status == ApprovalStatus.APPROVED
    assert result["message"] == "You are now copying trades from Alice"
    assert "new_copier" in _types(db, trader.id)
    assert "copy_trade_started" in _types(db, copier.id)


def test_cannot_copy_self_or_copy_twice(db, make_user):
    trader = make_user()
    copier = make_user()
    with pytest.raises(ValidationError):
        copy_trading_service.start_copying(db, trader.id, trader.id, 50)

    copy_trading_service.start_copying(db, copier.id, trader.id, 50)
    with pytest.raises(InvalidStateError):
        copy_trading_service.start_copying(db, copier.id, trader.id, 25)


def test_sizing_validation(db, make_user):
    trader = make_user()
    copier = make_user()
    with pytest.raises(ValidationError):
        copy_trading_service.start_copying(db, copier.id, trader.id, 0)
    with pytest.raises(ValidationError):
        copy_trading_service.start_copying(db, copier.id, trader.id, 50, max_drawdown_percentage=150)
    with pytest.raises(ValidationError):
        copy_trading_service.start_copying(db, copier.id, trader.id, 50, copy_fixed_size=True)


def test_private_trader_refuses_copiers(db, make_user):
    trader = make_user()
    copier = make_user()
    copy_trading_service.update_settings(db, trader.id, "private")
    with pytest.raises(CopyTradingNotAllowedError):
        copy_trading_service.start_copying(db, copier.id, trader.id, 50)


def test_followers_only_requires_follow(db, make_user):
    trader = make_user()
    copier = make_user()
    copy_trading_service.update_settings(db, trader.id, "followers_only", auto_approve_followers=False)
    with pytest.raises(CopyTradingNotAllowedError):
        copy_trading_service.start_copying(db, copier.id, trader.id, 50)

    db.add(Follow(follower_id=copier.id, following_id=trader.id))
    db.flush()
    relationship = copy_trading_service.start_copying(db, copier.id, trader.id, 50)["relationship"]
    assert relationship.approval_status == ApprovalStatus.PENDING
    assert relationship.status == CopyStatus.PAUSED


def test_approved_only_request_approval_flow(db, make_user):
    trader = make_user()
    copier = make_user()
    copy_trading_service.update_settings(db, trader.id, "approved_only")
    relationship = copy_trading_service.start_copying(db, copier.id, trader.id, 50)["relationship"]
    assert relationship.approval_status == ApprovalStatus.PENDING
    assert "copy_request" in _types(db, trader.id)

    with pytest.raises(NotAuthorizedError):
        copy_trading_service.approve_request(db, copier.id, relationship.id)

    copy_trading_service.approve_request(db, trader.id, relationship.id)
    assert relationship.approval_status == ApprovalStatus.APPROVED
    assert relationship.status == CopyStatus.ACTIVE
    assert "copy_request_approved" in _types(db, copier.id)

    with pytest.raises(InvalidStateError):
        copy_trading_service.approve_request(db, trader.id, relationship.id)


def test_reject_and_block_stop_the_relationship(db, make_user):
    trader = make_user()
    first = make_user()
    second = make_user()
    copy_trading_service.update_settings(db, trader.id, "approved_only")
    pending = copy_trading_service.start_copying(db, first.id, trader.id, 50)["relationship"]
    blocked = copy_trading_service.start_copying(db, second.id, trader.id, 50)["relationship"]

    copy_trading_service.reject_request(db, trader.id, pending.id)
    copy_trading_service.block_copier(db, trader.id, blocked.id)

    for relationship in (pending, blocked):
        assert relationship.status == CopyStatus.STOPPED
        assert relationship.approval_status == ApprovalStatus.REJECTED
        assert relationship.stopped_at is not None
    assert "copy_request_rejected" in _types(db, first.id)
    assert "copy_trade_blocked" in _types(db, second.id)


def test_pause_resume_stop_and_reactivate(db, make_user):
    trader = make_user()
    copier = make_user()
    relationship = copy_trading_service.start_copying(db, copier.id, trader.id, 50)["relationship"]

    copy_trading_service.update_relationship(db, copier.id, relationship.id, "paused",
                                             risk_allocation_percentage=25)
    assert relationship.status == CopyStatus.PAUSED
    assert float(relationship.risk_allocation_percentage) == 25

    with pytest.raises(ValidationError):
        copy_trading_service.update_relationship(db, copier.id, relationship.id, "stopped")
    with pytest.raises(ValidationError):
        copy_trading_service.update_relationship(db, copier.id, relationship.id, "active", leverage=3)
    with pytest.raises(NotAuthorizedError):
        copy_trading_service.update_relationship(db, trader.id, relationship.id, "active")
    with pytest.raises(InvalidStateError):
        copy_trading_service.reactivate(db, copier.id, relationship.id)

    copy_trading_service.stop_copying(db, copier.id, relationship.id)
    assert relationship.status == CopyStatus.STOPPED
    copy_trading_service.reactivate(db, copier.id, relationship.id)
    assert relationship.status == CopyStatus.ACTIVE
    assert relationship.stopped_at is None
    assert "copy_trade_paused" in _types(db, copier.id)


def test_blocked_copier_cannot_reactivate(db, make_user):
    trader = make_user()
    copier = make_user()
    relationship = copy_trading_service.start_copying(db, copier.id, trader.id, 50)["relationship"]
    copy_trading_service.block_copier(db, trader.id, relationship.id)

    with pytest.raises(InvalidStateError):
        copy_trading_service.reactivate(db, copier.id, relationship.id)
    with pytest.raises(InvalidStateError):
        copy_trading_service.update_relationship(db, copier.id, relationship.id, "active")
    assert relationship.status == CopyStatus.STOPPED
    assert relationship.approval_status == ApprovalStatus.REJECTED

    trade = _closed_trade(db, trader)
    assert copy_trading_service.replicate_trade(db, trade) == []


def test_pending_request_cannot_be_activated_by_copier(db, make_user):
    trader = make_user()
    copier = make_user()
    copy_trading_service.update_settings(db, trader.id, "approved_only")
    relationship = copy_trading_service.start_copying(db, copier.id, trader.id, 50)["relationship"]

    with pytest.raises(InvalidStateError):
        copy_trading_service.update_relationship(db, copier.id, relationship.id, "active")
    assert relationship.status == CopyStatus.PAUSED
    assert relationship.approval_status == ApprovalStatus.PENDING

    # Pausing a pending request is still allowed
    copy_trading_service.update_relationship(db, copier.id, relationship.id, "paused",
                                             risk_allocation_percentage=20)
    assert float(relationship.risk_allocation_percentage) == 20


def test_record_trade_computes_profit(db, make_user):
    trader = make_user()
    trade = _closed_trade(db, trader, entry=1.1000, exit_price=1.0950, lot=2.0, side="sell")
    assert trade.symbol == "EUR/USD"
    assert float(trade.profit) == pytest.approx(1000.0)

    open_trade = copy_trading_service.record_trade(db, trader.id, "GBPUSD", "buy", 1.25, 1.0)
    assert open_trade.profit is None
    assert not open_trade.is_closed

    with pytest.raises(ValidationError):
        copy_trading_service.record_trade(db, trader.id, "EUR/USD", "hold", 1.1, 1.0)
    with pytest.raises(ValidationError):
        copy_trading_service.record_trade(db, trader.id, "EUR/USD", "buy", 1.1, 1.0,
                                          closed_at=datetime.now())


def test_replication_scales_lot_size(db, make_user):
    trader = make_user("Alice")
    scaled = make_user()
    fixed = make_user()
    paused = make_user()
    copy_trading_service.start_copying(db, scaled.id, trader.id, 50)
    copy_trading_service.start_copying(db, fixed.id, trader.id, 100, copy_fixed_size=True, fixed_lot_size=0.1,
                                       copy_stop_loss=False, copy_take_profit=False)
    paused_rel = copy_trading_service.start_copying(db, paused.id, trader.id, 100)["relationship"]
    copy_trading_service.update_relationship(db, paused.id, paused_rel.id, "paused")

    trade = _closed_trade(db, trader, entry=1.1000, exit_price=1.1050, lot=1.0, stop_loss=1.0950,
                          take_profit=1.1100)
    copies = copy_trading_service.replicate_trade(db, trade)

    by_user = {c.user_id: c for c in copies}
    assert set(by_user) == {scaled.id, fixed.id}
    assert float(by_user[scaled.id].lot_size) == pytest.approx(0.5)
    assert float(by_user[scaled.id].profit) == pytest.approx(250.0)
    assert float(by_user[scaled.id].stop_loss) == pytest.approx(1.095)
    assert float(by_user[fixed.id].lot_size) == pytest.approx(0.1)
    assert float(by_user[scaled.id].take_profit) == pytest.approx(1.11)
    assert by_user[fixed.id].stop_loss is None
    assert by_user[fixed.id].take_profit is None
    assert all(c.copied_from_trade_id == trade.id for c in copies)
    assert "trade_copied" in _types(db, scaled.id)

    # Copies are never copied again
    assert copy_trading_service.replicate_trade(db, copies[0]) == []


class _FailingNotifications:
    """Delegates to the real service but fails trade_copied for one user."""

    def __init__(self, failing_user_id):
        self.failing_user_id = failing_user_id

    def notify(self, db, user_id, notification_type, data, preference=None):
        if user_id == self.failing_user_id and notification_type == "trade_copied":
            raise RuntimeError("notification backend unavailable")
        return notification_service.notify(db, user_id, notification_type, data, preference)


def test_failed_copier_leaves_no_copy(db, make_user):
    trader = make_user()
    good = make_user()
    bad = make_user()
    copy_trading_service.start_copying(db, good.id, trader.id, 50)
    copy_trading_service.start_copying(db, bad.id, trader.id, 50)

    trade = _closed_trade(db, trader)
    service = CopyTradingService(notifications=_FailingNotifications(bad.id))
    copies = service.replicate_trade(db, trade)

    assert [c.user_id for c in copies] == [good.id]
    stored = db.query(Trade).filter(Trade.copied_from_trade_id == trade.id).all()
    assert [c.user_id for c in stored] == [good.id]
    assert db.query(Trade).filter(Trade.user_id == bad.id).count() == 0
    assert "trade_copied" in _types(db, good.id)


def test_max_drawdown_pauses_relationship(db, make_user):
    trader = make_user()
    copier = make_user(balance=10000)
    relationship = copy_trading_service.start_copying(db, copier.id, trader.id, 50,
                                                      max_drawdown_percentage=4)["relationship"]

    # 100 pip loss on 0.5 lots is 500, or 5% of the copier's balance
    losing = _closed_trade(db, trader, entry=1.1000, exit_price=1.0900, lot=1.0)
    copy_trading_service.replicate_trade(db, losing)

    assert relationship.status == CopyStatus.PAUSED
    assert "max_drawdown_reached" in _types(db, copier.id)


def test_dashboard_stats_and_performance(db, make_user):
    trader = make_user()
    copier = make_user()
    relationship = copy_trading_service.start_copying(db, copier.id, trader.id, 100)["relationship"]
    copy_trading_service.replicate_trade(db, _closed_trade(db, trader, exit_price=1.1050))
    copy_trading_service.replicate_trade(db, _closed_trade(db, trader, exit_price=1.0980))

    stats = copy_trading_service.get_dashboard_stats(db, copier.id)
    assert stats["active"] == 1
    assert stats["total_copying"] == 1
    assert stats["total_profit"] == pytest.approx(300.0)
    assert stats["win_rate"] == 50
    assert copy_trading_service.get_dashboard_stats(db, trader.id)["total_copiers"] == 1

    performance = copy_trading_service.get_performance(db, copier.id, relationship.id)
    summary = performance["summary"]
    assert summary["total_trades"] == 2
    assert summary["winning_trades"] == 1
    assert summary["profit_factor"] == pytest.approx(2.5)
    assert len(performance["equity_curve"]["series"][0]["data"]) == 2
    with pytest.raises(NotAuthorizedError):
        copy_trading_service.get_performance(db, trader.id, relationship.id)


def test_top_traders_ranked_by_copiers(db, make_user):
    popular = make_user("Popular")
    quiet = make_user("Quiet")
    copiers = [make_user() for _ in range(3)]
    for copier in copiers[:2]:
        copy_trading_service.start_copying(db, copier.id, popular.id, 50)
    copy_trading_service.start_copying(db, copiers[2].id, quiet.id, 50)
    _closed_trade(db, popular)

    result = copy_trading_service.get_top_traders(db)
    assert [t["name"] for t in result["top_traders"]] == ["Popular", "Quiet"]
    assert result["top_traders"][0]["followers"] == 2
    assert result["top_traders"][0]["strategy"] == "Day Trading"
    assert result["recent_trades"][0]["trader"] == "Popular"


def test_trading_style_labels():
    assert trading_style([]) == "Mixed"
    assert trading_style([30]) == "Scalping"
    assert trading_style([120]) == "Day Trading"
    assert trading_style([2 * 1440]) == "Swing Trading"
    assert trading_style([30 * 1440]) == "Position Trading"
