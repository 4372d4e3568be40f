"""
Trading statistics for closed positions and backtest performance.
"""
import logging
from typing import Dict, List, Any

import pandas as pd
from sqlalchemy.orm import Session

from app.models.trading import TradingPosition, PositionStatus

logger = logging.getLogger(__name__)

CLOSED_STATUSES = (PositionStatus.CLOSED, PositionStatus.STOPPED)


class TradingStatsService:
    """Summary statistics and equity curve from a user's closed positions."""

    def _closed_positions(self, db: Session, user_id: int) -> pd.DataFrame:
        rows = db.query(
            TradingPosition.profit_loss, TradingPosition.entry_time, TradingPosition.exit_time
        ).filter(
            TradingPosition.user_id == user_id,
            TradingPosition.status.in_(CLOSED_STATUSES),
            TradingPosition.profit_loss.isnot(None),
            TradingPosition.entry_time.isnot(None),
            TradingPosition.exit_time.isnot(None)
        ).order_by(TradingPosition.exit_time.asc()).all()

        df = pd.DataFrame(
            [(float(r.profit_loss), r.entry_time, r.exit_time) for r in rows],
            columns=["profit_loss", "entry_time", "exit_time"]
        )
        return df

    def calculate_stats(self, db: Session, user_id: int) -> Dict[str, Any]:
        """
        Win rate, profit factor, average profit and average duration.

        Profit factor is the string "∞" when there are wins but no losses
        and "N/A" when there are no losses and no wins.
        """
        df = self._closed_positions(db, user_id)
        if df.empty:
            return self.default_stats()

        total_trades = len(df)
        total_pnl = float(df["profit_loss"].sum())
        gross_profit = float(df.loc[df["profit_loss"] > 0, "profit_loss"].sum())
        gross_loss = float(df.loc[df["profit_loss"] < 0, "profit_loss"].abs().sum())
        winning = int((df["profit_loss"] > 0).sum())

        if gross_loss > 0:
            profit_factor = round(gross_profit / gross_loss, 2)
        elif gross_profit > 0:
            profit_factor = "∞"
        else:
            profit_factor = "N/A"

        durations = [
            (pd.Timestamp(exit_) - pd.Timestamp(entry)).total_seconds()
            for entry, exit_ in zip(df["entry_time"], df["exit_time"])
        ]
        avg_hours = sum(durations) / total_trades / 3600

        return {
            "total_trades": total_trades,
            "total_profit_loss": round(total_pnl, 2),
            "win_rate": round(winning / total_trades * 100, 2),
            "profit_factor": profit_factor,
            "avg_profit_per_trade": round(total_pnl / total_trades, 2),
            "avg_trade_duration_hours": round(avg_hours, 2),
        }

    def default_stats(self) -> Dict[str, Any]:
        return {
            "total_trades": 0,
            "total_profit_loss": 0.0,
            "win_rate": 0.0,
            "profit_factor": "N/A",
            "avg_profit_per_trade": 0.0,
            "avg_trade_duration_hours": 0.0,
        }

    def equity_curve(self, db: Session, user_id: int) -> Dict[str, Any]:
        """Cumulative realized P&L as [ms timestamp, value] points."""
        df = self._closed_positions(db, user_id)
        points = []
        if not df.empty:
            cumulative = df["profit_loss"].cumsum()
            for exit_time, value in zip(df["exit_time"], cumulative):
                points.append([int(pd.Timestamp(exit_time).timestamp() * 1000), round(float(value), 2)])
        return {"series": [{"name": "Equity Curve", "data": points}]}


class PerformanceCalculationService:
    """Backtest metrics for a list of trade dicts, one unit per trade."""

    def calculate_performance(self, trades: List[Dict[str, Any]], initial_capital: float) -> Dict[str, Any]:
        logger.info(f"Calculating performance for {len(trades)} trades, initial capital {initial_capital}")

        total_trades = 0
        net_profit = 0.0
        winning = 0
        losing = 0

        for trade in trades:
            if not trade.get("exit_price") or not trade.get("entry_price"):
                logger.debug(f"Skipping trade without entry/exit price: {trade}")
                continue

            total_trades += 1
            entry = float(trade["entry_price"])
            exit_ = float(trade["exit_price"])
            side = str(trade.get("type", "")).lower()
            if side == "buy":
                pnl = exit_ - entry
            elif side == "sell":
                pnl = entry - exit_
            else:
                pnl = 0.0

            net_profit += pnl
            if pnl > 0:
                winning += 1
            elif pnl < 0:
                losing += 1

        metrics = {
            "initial_capital": initial_capital,
            "final_capital": initial_capital + net_profit,
            "net_profit": net_profit,
            "net_profit_percentage": net_profit / initial_capital * 100 if initial_capital else 0,
            "total_trades": total_trades,
            "winning_trades": winning,
            "losing_trades": losing,
            "win_rate": winning / total_trades * 100 if total_trades else 0,
        }
        logger.info(f"Performance calculated: {metrics}")
        return metrics


# Global service instances
trading_stats_service = TradingStatsService()
performance_calculation_service = PerformanceCalculationService()
