"""
Tests for the trading journal and watchlists.
"""
from datetime import datetime

import pytest

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models.journal import JournalOutcome
from app.services.journal_service import journal_service, derive_risk_reward, derive_outcome
from app.services.market_data import market_data_service
from app.services.watchlist_service import watchlist_service


def _entry(db, user, **overrides):
    data = {
        "pair": "eurusd",
        "direction": "long",
        "entry_price": 1.1000,
        "stop_loss": 1.0950,
        "take_profit": 1.1100,
        "entry_at": datetime(2024, 5, 1, 9, 0),
        "setup_reason": "Breakout above the Asian range",
        "tags": ["breakout"],
    }
    data.update(overrides)
    return journal_service.create_entry(db, user.id, data)


def test_derived_fields():
    assert derive_risk_reward(1.1, 1.095, 1.11) == pytest.approx(2.0)
    assert derive_risk_reward(1.1, 1.1, 1.11) is None
    assert derive_risk_reward(1.1, None, 1.11) is None
    assert derive_outcome(12.5) == JournalOutcome.WIN
    assert derive_outcome(-3) == JournalOutcome.LOSS
    assert derive_outcome(0) == JournalOutcome.BREAKEVEN
    assert derive_outcome(None) is None


def test_create_entry_derives_ratio_and_outcome(db, make_user):
    user = make_user()
    entry = _entry(db, user, profit_loss=-45)
    assert entry.pair == "EUR/USD"
    assert float(entry.risk_reward_ratio) == pytest.approx(2.0)
    assert entry.outcome == JournalOutcome.LOSS
    assert entry.is_favorite is False


def test_create_entry_validation(db, make_user):
    user = make_user()
    with pytest.raises(ValidationError):
        _entry(db, user, direction="sideways")
    with pytest.raises(ValidationError):
        _entry(db, user, entry_price=None)
    with pytest.raises(ValidationError):
        _entry(db, user, stop_loss=-1)
    with pytest.raises(ValidationError):
        _entry(db, user, exit_at=datetime(2024, 4, 30))
    with pytest.raises(ValidationError):
        _entry(db, user, tags=["x" * 51])


def test_update_keeps_explicit_outcome(db, make_user):
    user = make_user()
    entry = _entry(db, user)
    journal_service.update_entry(db, user.id, entry.id, {"outcome": "win", "profit_loss": -5})
    assert entry.outcome == JournalOutcome.WIN

    with pytest.raises(ValidationError):
        journal_service.update_entry(db, user.id, entry.id, {"exit_at": datetime(2024, 4, 1)})


def test_entries_are_scoped_and_filtered(db, make_user):
    user = make_user()
    other = make_user()
    first = _entry(db, user, profit_loss=30, entry_at=datetime(2024, 5, 1))
    _entry(db, user, pair="USD/JPY", entry_price=150.0, stop_loss=149.5, take_profit=151.0,
           profit_loss=-10, tags=["news"], entry_at=datetime(2024, 5, 2))

    with pytest.raises(NotFoundError):
        journal_service.get_entry(db, other.id, first.id)

    assert [e.pair for e in journal_service.list_entries(db, user.id)] == ["USD/JPY", "EUR/USD"]
    assert len(journal_service.list_entries(db, user.id, pair="usdjpy")) == 1
    assert len(journal_service.list_entries(db, user.id, outcome="win")) == 1
    assert len(journal_service.list_entries(db, user.id, tag="news")) == 1
    assert len(journal_service.list_entries(db, user.id, search="asian")) == 2
    with pytest.raises(ValidationError):
        journal_service.list_entries(db, user.id, outcome="jackpot")

    journal_service.toggle_favorite(db, user.id, first.id)
    favorites = journal_service.list_entries(db, user.id, favorites_only=True)
    assert [e.id for e in favorites] == [first.id]


def test_statistics(db, make_user):
    user = make_user()
    _entry(db, user, profit_loss=30)
    _entry(db, user, profit_loss=-10)
    _entry(db, user, profit_loss=20, pair="GBP/USD")

    stats = journal_service.get_statistics(db, user.id)
    assert stats["total_entries"] == 3
    assert stats["wins"] == 2
    assert stats["losses"] == 1
    assert stats["win_rate"] == pytest.approx(66.67)
    assert stats["total_profit_loss"] == pytest.approx(40.0)
    assert stats["most_traded_pairs"][0] == {"pair": "EUR/USD", "count": 2}


def test_delete_entry(db, make_user):
    user = make_user()
    entry = _entry(db, user)
    journal_service.delete_entry(db, user.id, entry.id)
    with pytest.raises(NotFoundError):
        journal_service.get_entry(db, user.id, entry.id)


def test_watchlist_add_list_remove(db, make_user):
    user = make_user()
    market_data_service.pin_price("EUR/USD", 1.1)
    watchlist_service.add_symbol(db, user.id, "eurusd")
    watchlist_service.add_symbol(db, user.id, "ACME")
    with pytest.raises(InvalidStateError):
        watchlist_service.add_symbol(db, user.id, "EUR/USD")

    rows = watchlist_service.list_with_quotes(db, user.id)
    quotes = {row["symbol"]: row["quote"] for row in rows}
    assert quotes["EUR/USD"]["price"] == pytest.approx(1.1)
    assert quotes["ACME"] is None

    watchlist_service.remove_symbol(db, user.id, "EUR/USD")
    with pytest.raises(NotFoundError):
        watchlist_service.remove_symbol(db, user.id, "EUR/USD")
    assert [row["symbol"] for row in watchlist_service.list_with_quotes(db, user.id)] == ["ACME"]
