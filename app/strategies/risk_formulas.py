"""
Risk and money-management formulas.

Pure functions over floats and pandas Series: Kelly sizing, expected
value, drawdown, Sharpe/Sortino ratios and historical Value at Risk.
Daily P&L series are indexed by date and sorted ascending.
"""
import numpy as np
import pandas as pd
from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import date, datetime
import logging

from app.strategies import pricing

logger = logging.getLogger(__name__)

TRADING_DAYS_PER_YEAR = 252

RISK_REWARD_CANDIDATES = [0.5, 1, 1.5, 2, 2.5, 3]

# Pairs and stop distances shown in the position sizing table
SIZING_PAIRS = ["EUR/USD", "GBP/USD", "USD/JPY", "USD/CHF", "AUD/USD", "EUR/GBP"]
SIZING_STOP_LOSS_PIPS = [20, 50, 100]
SIZING_RISK_REWARD = [1, 2, 3]


class PositionSizeError(ValueError):
    """Raised when a pair has no usable pip size or pip value."""


def kelly_percentage(win_rate: float, risk_reward: float = 1.0) -> float:
    """
    Kelly fraction as a percentage clamped to [0, 100].

    Args:
        win_rate: probability of a winning trade, 0..1
        risk_reward: average win divided by average loss
    """
    if risk_reward <= 0:
        return 0.0
    kelly = (win_rate - (1 - win_rate) / risk_reward) * 100
    return float(max(0.0, min(100.0, kelly)))


def expected_value(win_rate: float, risk_reward: float) -> float:
    """Expected R-multiple per trade: W*R - (1-W)."""
    return win_rate * risk_reward - (1 - win_rate)


def optimal_ratio(win_rate: float) -> float:
    """Break-even risk/reward ratio for a win rate; 1 when the win rate is zero."""
    if win_rate <= 0:
        return 1.0
    return (1 - win_rate) / win_rate


def expected_value_curve(win_rate: float, ratios: Iterable[float] = None) -> List[Dict[str, Any]]:
    """Expected value for each candidate ratio, flagging those near the optimum."""
    best = optimal_ratio(win_rate)
    curve = []
    for ratio in ratios or RISK_REWARD_CANDIDATES:
        curve.append({
            "ratio": ratio,
            "expected_value": expected_value(win_rate, ratio),
            "is_optimal": abs(ratio - best) < 0.3,
        })
    return curve


def optimal_risk_reward(win_rate: Optional[float]) -> Dict[str, Any]:
    """Kelly, optimal ratio and EV curve; a missing win rate counts as 50%."""
    if win_rate is None:
        win_rate = 0.5
    return {
        "win_rate": win_rate * 100,
        "kelly_percentage": kelly_percentage(win_rate, 1),
        "optimal_ratio": optimal_ratio(win_rate),
        "expected_values": expected_value_curve(win_rate),
    }


def position_size(account_balance: float, risk_percentage: float, entry_price: float,
                  stop_loss: float, currency_pair: str) -> Dict[str, float]:
    """
    Position size that risks ``risk_percentage`` of the balance.

    Raises:
        PositionSizeError: when the pair's pip size or USD pip value is unknown
    """
    risk_amount = account_balance * (risk_percentage / 100)

    size = pricing.pip_size(currency_pair)
    if size <= 0:
        logger.error(f"Invalid pip size calculated for pair: {currency_pair}")
        raise PositionSizeError("Invalid currency pair configuration")

    stop_loss_pips = abs(entry_price - stop_loss) / size

    value_per_lot = pricing.pip_value_per_lot_usd(currency_pair, size)
    if value_per_lot <= 0:
        logger.error(f"Invalid pip value per lot calculated for pair: {currency_pair}")
        raise PositionSizeError("Could not determine pip value for the pair")

    standard_lots = 0.0
    if stop_loss_pips > 0:
        standard_lots = risk_amount / (stop_loss_pips * value_per_lot)

    return {
        "risk_amount": risk_amount,
        "stop_loss_pips": stop_loss_pips,
        "position_size": standard_lots * pricing.STANDARD_LOT_UNITS,
        "standard_lots": standard_lots,
        "mini_lots": standard_lots * 10,
        "micro_lots": standard_lots * 100,
    }


def lot_size_table(account_balance: float, risk_percentage: float) -> Dict[str, List[Dict[str, Any]]]:
    """Recommended lots per pair and stop distance, plus profit/loss per R:R."""
    max_risk = account_balance * (risk_percentage / 100)
    fixed_risk = []
    percentage_risk = []

    for pair in SIZING_PAIRS:
        for stop_pips in SIZING_STOP_LOSS_PIPS:
            risk_per_pip = max_risk / stop_pips
            # $10 per pip on a standard lot
            lot = round(risk_per_pip / pricing.STANDARD_PIP_VALUE, 2)
            fixed_risk.append({
                "pair": pair,
                "stop_loss_pips": stop_pips,
                "max_risk_amount": max_risk,
                "recommended_lot_size": lot,
                "position_size": lot * pricing.STANDARD_LOT_UNITS,
            })

        for ratio in SIZING_RISK_REWARD:
            percentage_risk.append({
                "pair": pair,
                "risk_percentage": risk_percentage,
                "risk_reward_ratio": ratio,
                "potential_profit": max_risk * ratio,
                "potential_loss": max_risk,
            })

    return {"fixed_risk": fixed_risk, "percentage_risk": percentage_risk}


def daily_pnl(closed: Iterable[Tuple[Any, float]]) -> pd.Series:
    """
    Sum P&L per calendar day.

    Args:
        closed: (exit time, profit/loss) pairs; rows without an exit time are skipped
    """
    rows = [(pd.Timestamp(when).date(), float(pnl or 0)) for when, pnl in closed if when is not None]
    if not rows:
        return pd.Series(dtype=float)
    df = pd.DataFrame(rows, columns=["date", "pnl"])
    return df.groupby("date")["pnl"].sum().sort_index()


def max_drawdown(daily: pd.Series) -> Dict[str, Any]:
    """
    Largest peak-to-valley fall of cumulative daily P&L.

    The running peak starts at zero, so losses before any profit count
    as drawdown with a 0% percentage.
    """
    if daily is None or daily.empty:
        return {
            "value": 0,
            "percentage": 0,
            "start_date": None,
            "end_date": None,
            "recovery_date": None,
            "duration": 0,
        }

    cumulative = daily.sort_index().cumsum()
    dates = list(cumulative.index)

    worst = 0.0
    worst_pct = 0.0
    peak = 0.0
    peak_date = dates[0]
    valley = 0.0
    valley_date = peak_date
    recovery_date = None
    worst_start = peak_date
    worst_end = peak_date

    for day, value in cumulative.items():
        if value >= peak:
            if worst > 0 and recovery_date is None:
                recovery_date = day
            if value > peak:
                peak = value
                peak_date = day
                valley = value
                valley_date = day
        elif value < valley:
            valley = value
            valley_date = day
            drawdown = peak - valley
            if drawdown > worst:
                worst = drawdown
                worst_pct = (drawdown / peak) * 100 if peak > 0 else 0.0
                worst_start = peak_date
                worst_end = valley_date
                recovery_date = None

    return {
        "value": float(worst),
        "percentage": float(worst_pct),
        "start_date": _iso(worst_start),
        "end_date": _iso(worst_end),
        "recovery_date": _iso(recovery_date),
        "duration": abs((_as_date(worst_end) - _as_date(worst_start)).days),
    }


def sharpe_ratio(daily: pd.Series) -> float:
    """Annualised mean over population standard deviation, risk-free rate 0."""
    if daily is None or daily.empty:
        return 0.0
    returns = daily.to_numpy(dtype=float)
    std = np.std(returns)
    if std <= 0:
        return 0.0
    return float(returns.mean() / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def sortino_ratio(daily: pd.Series) -> float:
    """Annualised mean over downside deviation of losing days."""
    if daily is None or daily.empty:
        return 0.0
    returns = daily.to_numpy(dtype=float)
    downside = returns[returns < 0]
    if downside.size == 0:
        return 0.0
    deviation = np.sqrt(np.sum(downside ** 2) / downside.size)
    if deviation <= 0:
        return 0.0
    return float(returns.mean() / deviation * np.sqrt(TRADING_DAYS_PER_YEAR))


def value_at_risk(daily: pd.Series) -> Dict[str, float]:
    """Historical VaR at 95% and 99%, plus a square-root-of-time weekly 95%."""
    if daily is None or daily.empty:
        return {"daily_95": 0.0, "daily_99": 0.0, "weekly_95": 0.0}
    returns = np.sort(daily.to_numpy(dtype=float))
    count = len(returns)
    var95 = abs(returns[int(count * 0.05)])
    var99 = abs(returns[int(count * 0.01)])
    return {
        "daily_95": float(var95),
        "daily_99": float(var99),
        "weekly_95": float(var95 * np.sqrt(5)),
    }


def risk_tolerance_level(win_rate: Optional[float], risk_percentage: float,
                         relative_size: float) -> str:
    """
    Classify a trader as conservative, moderate or aggressive.

    Args:
        win_rate: percentage of winning closed positions, None without history
        risk_percentage: configured risk per trade
        relative_size: average position quantity as a percentage of the balance
    """
    if win_rate is None:
        return "moderate"
    if win_rate > 60 and risk_percentage <= 1 and relative_size < 5:
        return "conservative"
    if win_rate < 40 or risk_percentage > 5 or relative_size > 15:
        return "aggressive"
    return "moderate"


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    return _as_date(value).isoformat()
