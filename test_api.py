"""
HTTP tests for the platform API.
"""
from datetime import datetime, timedelta

import pytest

from app.models.trade import Trade
from app.services.copy_trading import copy_trading_service
from app.services.market_data import market_data_service


def headers(user):
    return {"X-User-Id": str(user.id)}


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"

    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["services"]["database"] == "up"
    assert body["services"]["redis"] == "fallback"
    assert body["services"]["scheduler"]["is_running"] is False


def test_user_header_is_required(client):
    assert client.get("/api/v1/wallets").status_code == 422
    assert client.get("/api/v1/wallets", headers={"X-User-Id": "abc"}).status_code == 422
    assert client.get("/api/v1/wallets", headers={"X-User-Id": "0"}).status_code == 401


def test_unknown_user_is_not_found(client):
    response = client.post("/api/v1/wallets", json={"currency": "USD"}, headers={"X-User-Id": "999"})
    assert response.status_code == 404
    assert client.get("/api/v1/wallets", headers={"X-User-Id": "999"}).status_code == 404
    assert client.get("/api/v1/analytics/stats", headers={"X-User-Id": "999"}).status_code == 404
    assert client.get("/api/v1/notifications/preferences", headers={"X-User-Id": "999"}).status_code == 404


def test_wallet_create_transfer_and_summary(client, make_user):
    user = make_user()
    usd = client.post("/api/v1/wallets", json={"currency": "USD", "initial_balance": 500},
                      headers=headers(user))
    assert usd.status_code == 201
    assert usd.json()["wallet"]["is_default"] is True
    eur = client.post("/api/v1/wallets", json={"currency": "EUR"}, headers=headers(user)).json()["wallet"]

    transfer = client.post("/api/v1/wallets/transfer", headers=headers(user), json={
        "from_wallet_id": usd.json()["wallet"]["id"],
        "to_wallet_id": eur["id"],
        "amount": 200,
    })
    assert transfer.status_code == 200
    assert transfer.json()["reference_id"].startswith("TRANSFER-")

    summary = client.get("/api/v1/wallets", headers=headers(user)).json()
    assert summary["total_balance"] == pytest.approx(500.0)
    assert len(summary["wallets"]) == 2

    overdraw = client.post(f"/api/v1/wallets/{eur['id']}/withdraw", json={"amount": 1000},
                           headers=headers(user))
    assert overdraw.status_code == 400


def test_wallet_of_another_user_is_hidden(client, make_user):
    owner = make_user()
    other = make_user()
    wallet = client.post("/api/v1/wallets", json={"currency": "USD"}, headers=headers(owner)).json()["wallet"]
    assert client.get(f"/api/v1/wallets/{wallet['id']}", headers=headers(other)).status_code == 404
    assert client.get("/api/v1/wallets/not-a-uuid", headers=headers(owner)).status_code == 404


def test_position_size_calculator(client):
    response = client.post("/api/risk-management/calculate-position-size", json={
        "account_balance": 10000, "risk_percentage": 1, "entry_price": 1.1,
        "stop_loss": 1.095, "currency_pair": "EUR/USD",
    })
    assert response.status_code == 200
    assert response.json()["standard_lots"] == pytest.approx(0.2)
    assert response.json()["stop_loss_pips"] == pytest.approx(50.0)

    unpriced = client.post("/api/risk-management/calculate-position-size", json={
        "account_balance": 10000, "risk_percentage": 1, "entry_price": 30.0,
        "stop_loss": 29.0, "currency_pair": "XAU/XAG",
    })
    assert unpriced.status_code == 400

    broke = client.post("/api/risk-management/calculate-position-size", json={
        "account_balance": 0.5, "risk_percentage": 1, "entry_price": 1.1,
        "stop_loss": 1.095, "currency_pair": "EUR/USD",
    })
    assert broke.status_code == 422


def test_risk_settings_and_dashboard(client, make_user):
    user = make_user()
    bad = client.put("/api/v1/risk-management/settings", headers=headers(user),
                     json={"risk_percentage": 20, "max_drawdown_percentage": 20})
    assert bad.status_code == 422

    ok = client.put("/api/v1/risk-management/settings", headers=headers(user),
                    json={"risk_percentage": 2, "max_drawdown_percentage": 15})
    assert ok.status_code == 200
    assert ok.json()["risk_percentage"] == 2

    dashboard = client.get("/api/v1/risk-management", headers=headers(user))
    assert dashboard.status_code == 200
    assert dashboard.json()["drawdown_alerts"]["alerts"] == []


def test_order_and_close_position(client, make_user):
    user = make_user(balance=10000, leverage=50)
    market_data_service.pin_price("EUR/USD", 1.1)

    quote = client.get("/api/v1/trading/quote", params={"pair": "EUR/USD"})
    assert quote.status_code == 200
    assert client.get("/api/v1/trading/quote", params={"pair": "ABC/XYZ"}).status_code == 422

    order = client.post("/api/v1/trading/orders", headers=headers(user), json={
        "currency_pair": "EUR/USD", "side": "BUY", "quantity": 10000,
    })
    assert order.status_code == 201
    assert order.json()["margin_required"] == pytest.approx(220.0)
    position_id = order.json()["position"]["id"]

    market_data_service.pin_price("EUR/USD", 1.102)
    closed = client.post(f"/api/v1/trading/positions/{position_id}/close", headers=headers(user))
    assert closed.status_code == 200
    assert closed.json()["profit_loss"] == pytest.approx(20.0)

    again = client.post(f"/api/v1/trading/positions/{position_id}/close", headers=headers(user))
    assert again.status_code == 409


def test_trading_wallet_endpoints(client, make_user):
    user = make_user()
    created = client.post("/api/v1/trading/wallets", headers=headers(user),
                          json={"wallet_type": "DEMO", "initial_balance": 2000})
    assert created.status_code == 201
    duplicate = client.post("/api/v1/trading/wallets", headers=headers(user),
                            json={"wallet_type": "DEMO", "initial_balance": 100})
    assert duplicate.status_code == 409


def test_recorded_trade_is_copied_in_background(client, db, make_user):
    trader = make_user()
    copier = make_user()
    copy_trading_service.start_copying(db, copier.id, trader.id, 50)

    opened = datetime.now() - timedelta(hours=1)
    response = client.post("/api/v1/copy-trading/trades", headers=headers(trader), json={
        "symbol": "EUR/USD", "type": "buy", "entry_price": 1.1, "lot_size": 1.0,
        "exit_price": 1.105, "opened_at": opened.isoformat(), "closed_at": datetime.now().isoformat(),
    })
    assert response.status_code == 201
    trade_id = response.json()["trade"]["id"]
    assert response.json()["trade"]["profit"] == pytest.approx(500.0)

    db.expire_all()
    copy = db.query(Trade).filter(Trade.copied_from_trade_id == trade_id).one()
    assert copy.user_id == copier.id
    assert float(copy.lot_size) == pytest.approx(0.5)


def test_copy_relationship_endpoints(client, make_user):
    trader = make_user("Alice")
    copier = make_user()

    started = client.post("/api/v1/copy-trading", headers=headers(copier),
                          json={"trader_id": trader.id, "risk_allocation_percentage": 25})
    assert started.status_code == 201
    relationship_id = started.json()["relationship"]["id"]

    duplicate = client.post("/api/v1/copy-trading", headers=headers(copier),
                            json={"trader_id": trader.id, "risk_allocation_percentage": 25})
    assert duplicate.status_code == 409

    listing = client.get("/api/v1/copy-trading", headers=headers(copier)).json()
    assert [r["id"] for r in listing["copying"]] == [relationship_id]

    stopped = client.delete(f"/api/v1/copy-trading/{relationship_id}", headers=headers(copier))
    assert stopped.status_code == 200


def test_private_trader_cannot_be_copied(client, make_user):
    trader = make_user()
    copier = make_user()
    settings = client.put("/api/v1/copy-trading/settings", headers=headers(trader),
                          json={"privacy_level": "private"})
    assert settings.status_code == 200

    response = client.post("/api/v1/copy-trading", headers=headers(copier),
                           json={"trader_id": trader.id, "risk_allocation_percentage": 25})
    assert response.status_code == 403


def test_followers_only_trader_over_http(client, make_user):
    trader = make_user("Alice")
    copier = make_user("Bob")
    settings = client.put("/api/v1/copy-trading/settings", headers=headers(trader),
                          json={"privacy_level": "followers_only", "auto_approve_followers": True})
    assert settings.status_code == 200

    copy_request = {"trader_id": trader.id, "risk_allocation_percentage": 25}
    refused = client.post("/api/v1/copy-trading", headers=headers(copier), json=copy_request)
    assert refused.status_code == 403

    followed = client.post(f"/api/v1/social/traders/{trader.id}/follow", headers=headers(copier))
    assert followed.status_code == 201
    again = client.post(f"/api/v1/social/traders/{trader.id}/follow", headers=headers(copier))
    assert again.status_code == 409
    assert client.post(f"/api/v1/social/traders/{copier.id}/follow", headers=headers(copier)).status_code == 422
    assert client.post("/api/v1/social/traders/999/follow", headers=headers(copier)).status_code == 404

    followers = client.get("/api/v1/social/followers", headers=headers(trader)).json()
    assert [f["id"] for f in followers["followers"]] == [copier.id]
    following = client.get("/api/v1/social/following", headers=headers(copier)).json()
    assert [f["id"] for f in following["following"]] == [trader.id]
    notifications = client.get("/api/v1/notifications", headers=headers(trader)).json()
    assert "new_follower" in [n["type"] for n in notifications["notifications"]]

    started = client.post("/api/v1/copy-trading", headers=headers(copier), json=copy_request)
    assert started.status_code == 201
    assert started.json()["relationship"]["status"] == "active"
    assert started.json()["relationship"]["approval_status"] == "approved"

    profile = client.get(f"/api/v1/social/traders/{trader.id}", headers=headers(copier)).json()
    assert profile["is_following"] is True
    assert profile["trader"]["stats"]["followers_count"] == 1

    unfollowed = client.delete(f"/api/v1/social/traders/{trader.id}/follow", headers=headers(copier))
    assert unfollowed.status_code == 200
    assert client.get("/api/v1/social/following", headers=headers(copier)).json()["total"] == 0


def test_social_search_and_popular(client, make_user):
    star = make_user("Star Trader")
    viewer = make_user("Viewer")
    client.post(f"/api/v1/social/traders/{star.id}/follow", headers=headers(viewer))

    popular = client.get("/api/v1/social/popular", headers=headers(viewer)).json()
    assert popular["traders"][0]["id"] == star.id
    assert popular["traders"][0]["is_following"] is True

    found = client.get("/api/v1/social/search", headers=headers(viewer), params={"query": "star"}).json()
    assert [t["id"] for t in found["traders"]] == [star.id]
    assert client.get("/api/v1/social/search", headers=headers(viewer), params={"query": " "}).status_code == 422
    assert client.get("/api/v1/social", headers=headers(star)).json()["stats"] == {"followers": 1, "following": 0}


def test_portfolio_endpoints(client, make_user):
    user = make_user()
    market_data_service.pin_price("EUR/USD", 1.2)
    added = client.post("/api/v1/portfolio/positions", headers=headers(user),
                        json={"symbol": "EUR/USD", "quantity": 1000, "average_price": 1.1})
    assert added.status_code == 201
    position_id = added.json()["position"]["id"]

    imported = client.post("/api/v1/portfolio/import", content="Symbol,Quantity,Average Price\nAAPL,10,150\n",
                           headers={**headers(user), "Content-Type": "text/csv"})
    assert imported.status_code == 200
    assert imported.json()["imported"] == 1

    overview = client.get("/api/v1/portfolio", headers=headers(user)).json()
    assert overview["summary"]["positions_count"] == 2
    assert overview["summary"]["total_profit_loss"] == pytest.approx(100.0)
    assert len(overview["performance"]) == 12

    exported = client.get("/api/v1/portfolio/export", headers=headers(user))
    assert exported.status_code == 200
    assert exported.headers["content-type"].startswith("text/csv")
    assert "attachment" in exported.headers["content-disposition"]
    assert exported.text.splitlines()[0] == "Symbol,Name,Quantity,Average Price,Category,Notes"

    removed = client.put(f"/api/v1/portfolio/positions/{position_id}", headers=headers(user), json={"quantity": 0})
    assert removed.json()["position"] is None
    assert client.delete(f"/api/v1/portfolio/positions/{position_id}", headers=headers(user)).status_code == 404


def test_strategy_endpoints(client, make_user):
    owner = make_user()
    other = make_user()
    created = client.post("/api/v1/strategies", headers=headers(owner),
                          json={"name": "Asian range fade", "timeframe": "H1"})
    assert created.status_code == 201
    strategy_id = created.json()["strategy"]["id"]

    listing = client.get("/api/v1/strategies", headers=headers(owner), params={"timeframe": "H1"}).json()
    assert [s["id"] for s in listing["strategies"]] == [strategy_id]

    forbidden = client.put(f"/api/v1/strategies/{strategy_id}", headers=headers(other), json={"name": "Taken"})
    assert forbidden.status_code == 403
    assert client.delete(f"/api/v1/strategies/{strategy_id}", headers=headers(owner)).status_code == 200


def test_notification_preferences_and_alerts(client, make_user):
    user = make_user()
    prefs = client.get("/api/v1/notifications/preferences", headers=headers(user))
    assert prefs.status_code == 200
    assert prefs.json()["market_news"] is True

    updated = client.put("/api/v1/notifications/preferences", headers=headers(user),
                         json={"market_news": False})
    assert updated.status_code == 200

    alert = client.post("/api/v1/notifications/alerts", headers=headers(user),
                        json={"symbol": "EUR/USD", "condition": "above", "price": 1.2})
    assert alert.status_code == 201
    bad = client.post("/api/v1/notifications/alerts", headers=headers(user),
                      json={"symbol": "EUR/USD", "condition": "sideways", "price": 1.2})
    assert bad.status_code == 422

    alerts = client.get("/api/v1/notifications/alerts", headers=headers(user)).json()
    assert len(alerts["active"]) == 1
    assert client.get("/api/v1/notifications/unread-count", headers=headers(user)).json() == {"unread_count": 0}


def test_journal_crud(client, make_user):
    user = make_user()
    created = client.post("/api/v1/journal", headers=headers(user), json={
        "pair": "GBP/USD", "direction": "short", "entry_price": 1.27, "stop_loss": 1.275,
        "take_profit": 1.26, "profit_loss": 40, "entry_at": "2024-05-01T10:00:00",
        "tags": ["trend"],
    })
    assert created.status_code == 201
    entry = created.json()["entry"]
    assert entry["outcome"] == "win"

    listing = client.get("/api/v1/journal", headers=headers(user), params={"tag": "trend"}).json()
    assert listing["count"] == 1

    updated = client.put(f"/api/v1/journal/{entry['id']}", headers=headers(user),
                         json={"execution_notes": "Scaled out early"})
    assert updated.status_code == 200

    assert client.delete(f"/api/v1/journal/{entry['id']}", headers=headers(user)).status_code == 200
    assert client.get(f"/api/v1/journal/{entry['id']}", headers=headers(user)).status_code == 404


def test_watchlist_endpoints(client, make_user):
    user = make_user()
    market_data_service.pin_price("USD/JPY", 151.2)
    assert client.post("/api/v1/watchlist", headers=headers(user), json={"symbol": "usdjpy"}).status_code == 201
    assert client.post("/api/v1/watchlist", headers=headers(user), json={"symbol": "USD/JPY"}).status_code == 409

    watchlist = client.get("/api/v1/watchlist", headers=headers(user)).json()
    assert watchlist["watchlist"][0]["quote"]["price"] == pytest.approx(151.2)

    removed = client.delete("/api/v1/watchlist", headers=headers(user), params={"symbol": "USD/JPY"})
    assert removed.status_code == 200


def test_market_endpoints(client):
    status = client.get("/api/v1/market/status").json()
    assert set(status) == {"is_open", "next_open", "next_close", "current_time"}

    assert client.get("/api/v1/market/news").json() == {"news": [], "count": 0}
    assert client.get("/api/v1/market/calendar", params={"impact": "extreme"}).status_code == 422


def test_analytics_endpoints(client, make_user):
    user = make_user()
    stats = client.get("/api/v1/analytics/stats", headers=headers(user)).json()
    assert stats["total_trades"] == 0
    assert stats["profit_factor"] == "N/A"

    backtest = client.post("/api/v1/analytics/backtest/performance", json={
        "trades": [
            {"type": "buy", "entry_price": 100, "exit_price": 110},
            {"type": "sell", "entry_price": 100, "exit_price": 104},
            {"type": "buy", "entry_price": 100},
        ],
        "initial_capital": 1000,
    })
    assert backtest.status_code == 200
    assert backtest.json()["total_trades"] == 2
    assert backtest.json()["net_profit"] == pytest.approx(6.0)
