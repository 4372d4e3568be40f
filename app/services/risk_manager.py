"""
Risk management service for the risk dashboard.

Builds the user's risk profile, position-sizing recommendations, optimal
risk/reward, portfolio risk metrics and drawdown alerts from closed and
open trading positions.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from sqlalchemy.orm import Session

from app.core.cache import redis_cache
from app.core.config import settings
from app.core.exceptions import PlatformError, ValidationError
from app.models.trading import TradingPosition, PositionStatus, OrderSide
from app.models.trading_wallet import TradingWallet, TradingWalletType
from app.models.user import User, AccountType
from app.services.wallet_service import wallet_service
from app.strategies import risk_formulas
from app.strategies.risk_formulas import PositionSizeError

logger = logging.getLogger(__name__)

HISTORY_DAYS = 30

RISK_PERCENTAGE_RANGE = (0.1, 10.0)
MAX_DRAWDOWN_RANGE = (5.0, 50.0)


class RiskManagerService:
    """Service for risk analysis and risk settings."""

    def __init__(self, wallets=None):
        self.wallets = wallets or wallet_service

    def get_active_trading_wallet(self, db: Session, user: User) -> Optional[TradingWallet]:
        """Active trading wallet matching the user's account type."""
        wallet_type = TradingWalletType.LIVE if user.account_type == AccountType.LIVE else TradingWalletType.DEMO
        return db.query(TradingWallet).filter(
            TradingWallet.user_id == user.id,
            TradingWallet.wallet_type == wallet_type,
            TradingWallet.is_active.is_(True)
        ).first()

    def _closed_positions(self, db: Session, user_id: int) -> List[TradingPosition]:
        return db.query(TradingPosition).filter(
            TradingPosition.user_id == user_id,
            TradingPosition.status.in_((PositionStatus.CLOSED, PositionStatus.STOPPED))
        ).all()

    def _win_rate(self, positions: List[TradingPosition]) -> Optional[float]:
        """Fraction of winning positions, None without history."""
        if not positions:
            return None
        wins = sum(1 for p in positions if p.profit_loss is not None and float(p.profit_loss) > 0)
        return wins / len(positions)

    # Dashboard sections

    def get_risk_profile(self, db: Session, user_id: int) -> Dict[str, Any]:
        """
        Risk settings, daily loss/profit history and average risk per trade.

        The history covers the 30 most recent days with closed positions.
        """
        user = self.wallets.get_user(db, user_id)
        positions = self._closed_positions(db, user_id)

        by_day: Dict[Any, Dict[str, Any]] = {}
        for position in positions:
            if position.exit_time is None:
                continue
            day = position.exit_time.date()
            row = by_day.setdefault(day, {"date": day.isoformat(), "total_loss": 0.0,
                                          "total_profit": 0.0, "trade_count": 0})
            pnl = float(position.profit_loss or 0)
            if pnl < 0:
                row["total_loss"] += abs(pnl)
            elif pnl > 0:
                row["total_profit"] += pnl
            row["trade_count"] += 1
        history = [by_day[d] for d in sorted(by_day, reverse=True)[:HISTORY_DAYS]]

        risks = [
            abs(float(p.entry_price) - float(p.stop_loss)) / float(p.entry_price) * 100
            for p in positions
            if p.stop_loss is not None and p.entry_price
        ]
        avg_risk = sum(risks) / len(risks) if risks else 0.0

        return {
            "risk_percentage": float(user.risk_percentage or settings.default_risk_percentage),
            "historical_risk": history,
            "avg_risk_per_trade": avg_risk,
            "risk_tolerance_level": self.calculate_risk_tolerance_level(db, user, positions),
        }

    def calculate_risk_tolerance_level(self, db: Session, user: User,
                                       positions: List[TradingPosition] = None) -> str:
        if positions is None:
            positions = self._closed_positions(db, user.id)
        win_rate = self._win_rate(positions)
        if win_rate is None:
            return "moderate"

        avg_quantity = sum(float(p.quantity) for p in positions) / len(positions)
        balance = float(user.account_balance or 0)
        relative_size = avg_quantity / balance * 100 if balance > 0 else 0
        return risk_formulas.risk_tolerance_level(win_rate * 100, float(user.risk_percentage), relative_size)

    def get_position_sizing(self, db: Session, user_id: int) -> Dict[str, Any]:
        """Lot-size table for the active trading wallet, plus optimal R:R."""
        user = self.wallets.get_user(db, user_id)
        trading_wallet = self.get_active_trading_wallet(db, user)
        if trading_wallet is None:
            return {"fixed_risk": [], "percentage_risk": [], "risk_reward_ratios": []}

        risk_percentage = float(user.risk_percentage or settings.default_risk_percentage)
        table = risk_formulas.lot_size_table(float(trading_wallet.balance or 0), risk_percentage)
        table["risk_reward_ratios"] = self.get_optimal_risk_reward(db, user_id)
        return table

    def get_optimal_risk_reward(self, db: Session, user_id: int) -> Dict[str, Any]:
        return risk_formulas.optimal_risk_reward(self._win_rate(self._closed_positions(db, user_id)))

    def get_risk_metrics(self, db: Session, user_id: int) -> Dict[str, Any]:
        """Max drawdown, Sharpe, Sortino and historical VaR on daily P&L."""
        positions = self._closed_positions(db, user_id)
        daily = risk_formulas.daily_pnl((p.exit_time, p.profit_loss) for p in positions)
        return {
            "max_drawdown": risk_formulas.max_drawdown(daily),
            "sharpe_ratio": risk_formulas.sharpe_ratio(daily),
            "sortino_ratio": risk_formulas.sortino_ratio(daily),
            "value_at_risk": risk_formulas.value_at_risk(daily),
        }

    def get_drawdown_alerts(self, db: Session, user_id: int) -> Dict[str, Any]:
        """
        Alerts for the unrealized drawdown of open positions.

        Account alerts compare the drawdown against the user's maximum
        (critical at 100%, warning at 75%, caution at 50% of it); each open
        position down by 10% or more from entry gets its own alert.
        """
        user = self.wallets.get_user(db, user_id)
        trading_wallet = self.get_active_trading_wallet(db, user)
        if trading_wallet is None:
            return {"current_drawdown": 0, "current_drawdown_percentage": 0,
                    "max_allowed_drawdown": 0, "alerts": []}

        open_positions = db.query(TradingPosition).filter(
            TradingPosition.user_id == user_id,
            TradingPosition.status == PositionStatus.OPEN
        ).all()

        unrealized = sum(p.unrealized_pnl() for p in open_positions)
        balance = float(trading_wallet.balance or 0)
        current_drawdown = abs(unrealized) if unrealized < 0 else 0.0
        drawdown_pct = current_drawdown / balance * 100 if balance > 0 else 0.0
        max_allowed = float(user.max_drawdown_percentage or settings.default_max_drawdown_percentage)
        now = datetime.now().isoformat()

        alerts = []
        if drawdown_pct >= max_allowed:
            alerts.append({
                "level": "critical",
                "message": "Maximum drawdown threshold exceeded. Consider closing some positions to reduce risk.",
                "percentage": drawdown_pct,
                "timestamp": now,
            })
        elif drawdown_pct >= max_allowed * 0.75:
            alerts.append({
                "level": "warning",
                "message": "Drawdown approaching maximum threshold. Review open positions and risk exposure.",
                "percentage": drawdown_pct,
                "timestamp": now,
            })
        elif drawdown_pct >= max_allowed * 0.5:
            alerts.append({
                "level": "caution",
                "message": "Moderate drawdown detected. Monitor positions closely.",
                "percentage": drawdown_pct,
                "timestamp": now,
            })

        threshold = settings.position_drawdown_alert_percentage
        for position in open_positions:
            entry = float(position.entry_price)
            current = float(position.current_price) if position.current_price is not None else entry
            if entry <= 0 or current <= 0:
                continue
            if position.trade_type == OrderSide.BUY and current < entry:
                position_drawdown = (entry - current) / entry * 100
            elif position.trade_type == OrderSide.SELL and current > entry:
                position_drawdown = (current - entry) / entry * 100
            else:
                position_drawdown = 0.0
            if position_drawdown >= threshold:
                alerts.append({
                    "level": "position",
                    "message": (f"Position {position.currency_pair} has a significant drawdown "
                                f"of {position_drawdown:.2f}%."),
                    "percentage": position_drawdown,
                    "position_id": str(position.id),
                    "timestamp": now,
                })

        return {
            "current_drawdown": current_drawdown,
            "current_drawdown_percentage": drawdown_pct,
            "max_allowed_drawdown": max_allowed,
            "alerts": alerts,
        }

    def get_dashboard(self, db: Session, user_id: int) -> Dict[str, Any]:
        """All dashboard sections; cached briefly per user."""
        cached = redis_cache.get_user_summary(user_id, "risk")
        if cached:
            return cached

        user = self.wallets.get_user(db, user_id)
        trading_wallet = self.get_active_trading_wallet(db, user)
        dashboard = {
            "risk_profile": self.get_risk_profile(db, user_id),
            "position_sizing": self.get_position_sizing(db, user_id),
            "risk_metrics": self.get_risk_metrics(db, user_id),
            "drawdown_alerts": self.get_drawdown_alerts(db, user_id),
            "active_wallet": trading_wallet.to_dict() if trading_wallet else None,
            "timestamp": datetime.now().isoformat(),
        }
        redis_cache.set_user_summary(user_id, "risk", dashboard, expiration=30)
        return dashboard

    # Settings and calculators

    def update_risk_settings(self, db: Session, user_id: int, risk_percentage: float,
                             max_drawdown_percentage: float) -> User:
        low, high = RISK_PERCENTAGE_RANGE
        if not low <= risk_percentage <= high:
            raise ValidationError(f"Risk percentage must be between {low} and {high}.")
        low, high = MAX_DRAWDOWN_RANGE
        if not low <= max_drawdown_percentage <= high:
            raise ValidationError(f"Maximum drawdown must be between {low:g} and {high:g}.")

        user = self.wallets.get_user(db, user_id)
        user.risk_percentage = risk_percentage
        user.max_drawdown_percentage = max_drawdown_percentage
        db.flush()
        redis_cache.invalidate_user_summary(user_id, "risk")
        logger.info(f"Updated risk settings for user {user_id}: {risk_percentage}% / {max_drawdown_percentage}%")
        return user

    def calculate_position_size(self, account_balance: float, risk_percentage: float, entry_price: float,
                                stop_loss: float, currency_pair: str) -> Dict[str, float]:
        """Validate the inputs and size a position that risks a share of the balance."""
        if account_balance < 1:
            raise ValidationError("Account balance must be at least 1.")
        low, high = RISK_PERCENTAGE_RANGE
        if not low <= risk_percentage <= high:
            raise ValidationError(f"Risk percentage must be between {low} and {high}.")
        if entry_price < 0.00001 or stop_loss < 0.00001:
            raise ValidationError("Entry price and stop loss must be at least 0.00001.")
        if not currency_pair:
            raise ValidationError("Currency pair is required.")

        try:
            return risk_formulas.position_size(account_balance, risk_percentage, entry_price,
                                               stop_loss, currency_pair)
        except PositionSizeError as e:
            raise PlatformError(str(e))


# Global risk manager instance
risk_manager = RiskManagerService()
