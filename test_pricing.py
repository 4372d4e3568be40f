"""
Tests for pip, lot and margin arithmetic.
"""
import math

import pytest

from app.strategies import pricing


def test_normalize_pair_spellings():
    assert pricing.normalize_pair("eurusd") == "EUR/USD"
    assert pricing.normalize_pair("gbp_jpy") == "GBP/JPY"
    assert pricing.normalize_pair(" usd-chf ") == "USD/CHF"
    assert pricing.normalize_pair("EUR/USD") == "EUR/USD"


def test_pip_size_for_jpy_and_other_pairs():
    assert pricing.pip_size("EUR/USD") == 0.0001
    assert pricing.pip_size("USD/JPY") == 0.01
    # Unknown pairs fall back on the JPY rule
    assert pricing.pip_size("CAD/JPY") == 0.01
    assert pricing.pip_size("NZD/CAD") == 0.0001


def test_trade_profit_buy_winner():
    assert pricing.trade_profit("buy", 1.1000, 1.1050, 1.0, "EUR/USD") == pytest.approx(500.0)


def test_trade_profit_sell_loser():
    assert pricing.trade_profit("SELL", 1.1000, 1.1050, 0.5, "EUR/USD") == pytest.approx(-250.0)


def test_trade_profit_jpy_pair():
    assert pricing.trade_profit("buy", 150.00, 150.50, 1.0, "USD/JPY") == pytest.approx(500.0)
    assert pricing.trade_profit("sell", 150.00, 149.00, 0.1, "USD/JPY") == pytest.approx(100.0)


def test_trade_profit_flat_trade_is_positive_zero():
    profit = pricing.trade_profit("sell", 1.2500, 1.2500, 2.0, "GBP/USD")
    assert profit == 0.0
    assert math.copysign(1, profit) == 1


def test_profit_loss_by_side():
    assert pricing.profit_loss("BUY", 1.10, 1.11, 1000) == pytest.approx(10.0)
    assert pricing.profit_loss("SELL", 1.10, 1.11, 1000) == pytest.approx(-10.0)


def test_required_margin():
    assert pricing.required_margin(100000, 1.10, 50) == pytest.approx(2200.0)
    # Missing leverage means no leverage
    assert pricing.required_margin(1000, 1.10, 0) == pytest.approx(1100.0)


def test_pip_value_per_lot_usd():
    assert pricing.pip_value_per_lot_usd("EUR/USD") == pytest.approx(10.0)
    assert pricing.pip_value_per_lot_usd("USD/JPY") == pytest.approx(1000 / 155.0)
    assert pricing.pip_value_per_lot_usd("EUR/GBP") == pytest.approx(12.5)
    assert pricing.pip_value_per_lot_usd("XAU/XAG") == 0.0


def test_lot_conversions():
    assert pricing.lots_to_units(0.1) == pytest.approx(10000)
    assert pricing.units_to_lots(250000) == pytest.approx(2.5)
