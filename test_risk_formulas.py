"""
Tests for the money-management formulas.
"""
from datetime import date, datetime

import pandas as pd
import pytest

from app.strategies import risk_formulas
from app.strategies.risk_formulas import PositionSizeError


def _daily(values):
    index = [date(2024, 3, day) for day in range(1, len(values) + 1)]
    return pd.Series(values, index=index, dtype=float)


def test_kelly_percentage_is_clamped():
    assert risk_formulas.kelly_percentage(0.6, 1) == pytest.approx(20.0)
    assert risk_formulas.kelly_percentage(0.2, 1) == 0.0
    assert risk_formulas.kelly_percentage(1.0, 1) == 100.0
    assert risk_formulas.kelly_percentage(0.5, 0) == 0.0


def test_expected_value_and_optimal_ratio():
    assert risk_formulas.expected_value(0.5, 2) == pytest.approx(0.5)
    assert risk_formulas.optimal_ratio(0.4) == pytest.approx(1.5)
    assert risk_formulas.optimal_ratio(0) == 1.0


def test_optimal_risk_reward_without_history():
    result = risk_formulas.optimal_risk_reward(None)
    assert result["win_rate"] == 50
    assert result["optimal_ratio"] == 1.0
    optimal = [row["ratio"] for row in result["expected_values"] if row["is_optimal"]]
    assert optimal == [1]


def test_position_size_eur_usd():
    result = risk_formulas.position_size(10000, 1, 1.1000, 1.0950, "EUR/USD")
    assert result["risk_amount"] == pytest.approx(100.0)
    assert result["stop_loss_pips"] == pytest.approx(50.0)
    assert result["standard_lots"] == pytest.approx(0.2)
    assert result["mini_lots"] == pytest.approx(2.0)
    assert result["micro_lots"] == pytest.approx(20.0)
    assert result["position_size"] == pytest.approx(20000.0)


def test_position_size_with_zero_stop_distance():
    result = risk_formulas.position_size(10000, 2, 1.2, 1.2, "GBP/USD")
    assert result["standard_lots"] == 0.0
    assert result["position_size"] == 0.0


def test_position_size_unknown_pair_raises():
    with pytest.raises(PositionSizeError):
        risk_formulas.position_size(10000, 2, 1.5, 1.4, "XAU/XAG")


def test_lot_size_table_shape():
    table = risk_formulas.lot_size_table(10000, 2)
    assert len(table["fixed_risk"]) == 18
    assert len(table["percentage_risk"]) == 18
    first = table["fixed_risk"][0]
    assert first["pair"] == "EUR/USD"
    assert first["stop_loss_pips"] == 20
    assert first["recommended_lot_size"] == pytest.approx(1.0)
    assert table["percentage_risk"][2]["potential_profit"] == pytest.approx(600.0)


def test_daily_pnl_groups_by_day_and_skips_open_rows():
    daily = risk_formulas.daily_pnl([
        (datetime(2024, 3, 1, 9), 50),
        (datetime(2024, 3, 1, 15), -20),
        (datetime(2024, 3, 2, 10), 10),
        (None, 999),
    ])
    assert list(daily.index) == [date(2024, 3, 1), date(2024, 3, 2)]
    assert list(daily.values) == [30.0, 10.0]


def test_max_drawdown_with_recovery():
    result = risk_formulas.max_drawdown(_daily([100, -50, -30, 200]))
    assert result["value"] == pytest.approx(80.0)
    assert result["percentage"] == pytest.approx(80.0)
    assert result["start_date"] == "2024-03-01"
    assert result["end_date"] == "2024-03-03"
    assert result["recovery_date"] == "2024-03-04"
    assert result["duration"] == 2


def test_max_drawdown_losses_before_any_profit():
    result = risk_formulas.max_drawdown(_daily([-40, -10]))
    assert result["value"] == pytest.approx(50.0)
    assert result["percentage"] == 0.0
    assert result["recovery_date"] is None


def test_max_drawdown_empty():
    result = risk_formulas.max_drawdown(pd.Series(dtype=float))
    assert result["value"] == 0
    assert result["start_date"] is None


def test_sharpe_and_sortino():
    daily = _daily([10, -5, 15, -5])
    # mean 3.75, population std 8.93
    assert risk_formulas.sharpe_ratio(daily) == pytest.approx(3.75 / 8.926785 * 252 ** 0.5, rel=1e-4)
    assert risk_formulas.sortino_ratio(daily) == pytest.approx(3.75 / 5 * 252 ** 0.5)
    assert risk_formulas.sortino_ratio(_daily([1, 2, 3])) == 0.0
    assert risk_formulas.sharpe_ratio(_daily([5, 5])) == 0.0


def test_value_at_risk():
    daily = _daily([float(v) for v in range(-10, 10)])
    var = risk_formulas.value_at_risk(daily)
    # 5% of 20 observations selects the second-worst day
    assert var["daily_95"] == pytest.approx(9.0)
    assert var["daily_99"] == pytest.approx(10.0)
    assert var["weekly_95"] == pytest.approx(9.0 * 5 ** 0.5)


def test_risk_tolerance_level():
    assert risk_formulas.risk_tolerance_level(None, 2, 0) == "moderate"
    assert risk_formulas.risk_tolerance_level(65, 1, 2) == "conservative"
    assert risk_formulas.risk_tolerance_level(35, 1, 2) == "aggressive"
    assert risk_formulas.risk_tolerance_level(50, 6, 2) == "aggressive"
    assert risk_formulas.risk_tolerance_level(50, 2, 10) == "moderate"
