"""
Notification service: in-app notifications, e-mail delivery, price alerts
and performance milestones.

Each notification type maps to a preference switch. A disabled switch
suppresses the notification entirely; otherwise it is stored in-app and,
when e-mail delivery is enabled, also mailed.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.notification import (
    AlertCondition, Notification, NotificationPreference, PriceAlert,
    NOTIFICATION_KINDS, DELIVERY_CHANNELS
)
from app.models.trade import Trade
from app.models.user import User
from app.services.mailer import mailer
from app.services.market_data import market_data_service
from app.services.wallet_service import parse_uuid

logger = logging.getLogger(__name__)

# Preference switch controlling each notification type; None means always on
TYPE_PREFERENCES = {
    "price_alert": "price_alerts",
    "market_news": "market_news",
    "trade_executed": "trade_executed",
    "trade_closed": "trade_closed",
    "copy_trade_started": None,
    "copy_trade_paused": None,
    "copy_trade_resumed": None,
    "copy_trade_stopped": "copier_stopped",
    "copy_request": "copy_request_received",
    "copy_request_approved": "copy_request_approved",
    "copy_request_rejected": "copy_request_rejected",
    "copy_trade_blocked": "copy_request_rejected",
    "new_copier": "new_copier",
    "trade_copied": "trader_new_trade",
    "max_drawdown_reached": "drawdown_alert",
    "margin_call": "drawdown_alert",
    "stop_out": "drawdown_alert",
    "profit_milestone": "profit_milestone",
    "loss_milestone": "loss_milestone",
    "win_rate_milestone": "win_streak",
    "win_streak": "win_streak",
    "drawdown_alert": "drawdown_alert",
    "new_follower": "new_follower",
}

PROFIT_MILESTONES = [100, 500, 1000, 5000, 10000]
WIN_RATE_MILESTONES = [60, 70, 80, 90]
WIN_STREAK_MILESTONES = [5, 10]
DRAWDOWN_THRESHOLDS = [10, 20, 30]
MIN_TRADES_FOR_WIN_RATE = 10


class NotificationService:
    """Service for notifications, preferences and price alerts."""

    def __init__(self, market_data=None, mail=None):
        self.market_data = market_data or market_data_service
        self.mailer = mail or mailer

    # Preferences

    def get_preferences(self, db: Session, user_id: int) -> NotificationPreference:
        """Fetch preferences, creating the all-enabled defaults on first use."""
        prefs = db.query(NotificationPreference).filter(NotificationPreference.user_id == user_id).first()
        if prefs is None:
            prefs = NotificationPreference(user_id=user_id)
            for name in NOTIFICATION_KINDS + DELIVERY_CHANNELS:
                setattr(prefs, name, True)
            db.add(prefs)
            db.flush()
        return prefs

    def update_preferences(self, db: Session, user_id: int, changes: Dict[str, bool]) -> NotificationPreference:
        prefs = self.get_preferences(db, user_id)
        for name, value in changes.items():
            if name not in NOTIFICATION_KINDS and name not in DELIVERY_CHANNELS:
                raise ValidationError(f"Unknown notification preference: {name}")
            setattr(prefs, name, bool(value))
        db.flush()
        return prefs

    # Delivery

    def notify(self, db: Session, user_id: int, notification_type: str, data: Dict[str, Any],
               preference: str = None) -> Optional[Notification]:
        """
        Deliver a notification according to the user's preferences.

        Args:
            preference: override for the switch checked; defaults to the type's mapping

        Returns:
            The stored in-app notification, or None when suppressed or in-app is off
        """
        user = db.get(User, user_id)
        if user is None:
            logger.warning(f"Notification {notification_type} for missing user {user_id}")
            return None

        prefs = self.get_preferences(db, user_id)
        kind = preference or TYPE_PREFERENCES.get(notification_type)
        if kind and not prefs.allows(kind):
            logger.debug(f"Notification {notification_type} suppressed for user {user_id}")
            return None

        notification = None
        if prefs.in_app_notifications:
            notification = Notification(user_id=user_id, type=notification_type, data=data)
            db.add(notification)
            db.flush()

        if prefs.email_notifications and self.mailer.is_configured:
            subject = data.get("title") or notification_type.replace("_", " ").title()
            try:
                self.mailer.send(user.email, subject, self.mailer.render(notification_type, data))
            except Exception as e:
                logger.error(f"Failed to e-mail {notification_type} to user {user_id}: {e}")

        logger.info(f"Notification {notification_type} sent to user {user_id}")
        return notification

    def notify_trade_closed(self, db: Session, user_id: int, details: Dict[str, Any],
                            close_reason: str = None) -> Optional[Notification]:
        """Trade-closed notice gated by the stop-loss, take-profit or generic switch."""
        prefs = self.get_preferences(db, user_id)
        allowed = prefs.trade_closed
        if close_reason == "stop_loss" and prefs.stop_loss_hit:
            allowed = True
        if close_reason == "take_profit" and prefs.take_profit_hit:
            allowed = True
        if not allowed:
            return None

        profit = details.get("profit_loss", 0) or 0
        data = dict(details)
        data.setdefault("title", "Trade closed")
        data.setdefault("message", f"{details.get('currency_pair', '')} closed with P&L {profit:.2f}")
        data["close_reason"] = close_reason
        # The switch has already been checked above
        return self.notify(db, user_id, "trade_closed", data, preference="in_app_notifications")

    def list_notifications(self, db: Session, user_id: int, unread_only: bool = False,
                           limit: int = 20, offset: int = 0) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.read_at.is_(None))
        return query.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()

    def unread_count(self, db: Session, user_id: int) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read_at.is_(None)
        ).count()

    def mark_as_read(self, db: Session, user_id: int, notification_id) -> Notification:
        notification = db.get(Notification, parse_uuid(notification_id, "Notification"))
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification", notification_id)
        if notification.read_at is None:
            notification.read_at = datetime.now()
            db.flush()
        return notification

    def mark_all_as_read(self, db: Session, user_id: int) -> int:
        count = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.read_at.is_(None)
        ).update({Notification.read_at: datetime.now()}, synchronize_session="fetch")
        db.flush()
        return count

    # Price alerts

    def create_price_alert(self, db: Session, user_id: int, symbol: str, condition: str, price: float,
                           percent_change: float = None, is_recurring: bool = False) -> PriceAlert:
        try:
            alert_condition = AlertCondition(condition)
        except ValueError:
            raise ValidationError("Condition must be one of: above, below, percent_change.")
        if price is None or price < 0:
            raise ValidationError("Price must be zero or greater.")
        if alert_condition == AlertCondition.PERCENT_CHANGE and not percent_change:
            raise ValidationError("Percent change is required for percent_change alerts.")
        if len(symbol) > 20:
            raise ValidationError("Symbol may not be longer than 20 characters.")

        alert = PriceAlert(
            user_id=user_id,
            symbol=symbol.upper(),
            condition=alert_condition,
            price=price,
            percent_change=percent_change,
            is_recurring=is_recurring,
            is_triggered=False,
        )
        db.add(alert)
        db.flush()
        logger.info(f"Price alert {alert.id} created for user {user_id} on {alert.symbol}")
        return alert

    def list_price_alerts(self, db: Session, user_id: int) -> Dict[str, List[PriceAlert]]:
        """Active alerts and the ten most recently triggered ones."""
        active = db.query(PriceAlert).filter(
            PriceAlert.user_id == user_id,
            PriceAlert.is_triggered.is_(False)
        ).order_by(PriceAlert.created_at.desc()).all()
        triggered = db.query(PriceAlert).filter(
            PriceAlert.user_id == user_id,
            PriceAlert.is_triggered.is_(True)
        ).order_by(PriceAlert.triggered_at.desc()).limit(10).all()
        return {"active": active, "triggered": triggered}

    def delete_price_alert(self, db: Session, user_id: int, alert_id: int) -> None:
        alert = db.get(PriceAlert, alert_id)
        if alert is None or alert.user_id != user_id:
            raise NotFoundError("Price alert", alert_id)
        db.delete(alert)
        db.flush()

    def trigger_price_alert(self, db: Session, alert: PriceAlert, current_price: float) -> None:
        """Mark an alert triggered, notify its owner and re-arm recurring alerts."""
        alert.is_triggered = True
        alert.triggered_at = datetime.now()

        direction = {
            AlertCondition.ABOVE: "risen above",
            AlertCondition.BELOW: "fallen below",
            AlertCondition.PERCENT_CHANGE: "moved from",
        }[alert.condition]
        self.notify(db, alert.user_id, "price_alert", {
            "title": f"Price alert: {alert.symbol}",
            "message": f"{alert.symbol} has {direction} {float(alert.price)}",
            "price_alert_id": alert.id,
            "symbol": alert.symbol,
            "condition": alert.condition.value,
            "target_price": float(alert.price),
            "current_price": current_price,
        })

        if alert.is_recurring:
            db.add(PriceAlert(
                user_id=alert.user_id,
                symbol=alert.symbol,
                condition=alert.condition,
                price=current_price,
                percent_change=alert.percent_change,
                is_recurring=True,
                is_triggered=False,
            ))
        db.flush()
        logger.info(f"Price alert {alert.id} triggered for user {alert.user_id} at {current_price}")

    def check_price_alerts(self, db: Session, symbol: str = None, current_price: float = None) -> int:
        """
        Evaluate untriggered alerts, for one symbol or for every alerted symbol.

        Returns:
            Number of alerts triggered
        """
        query = db.query(PriceAlert).filter(PriceAlert.is_triggered.is_(False))
        if symbol:
            query = query.filter(PriceAlert.symbol == symbol.upper())
        alerts = query.all()

        prices: Dict[str, float] = {}
        if symbol and current_price is not None:
            prices[symbol.upper()] = current_price

        triggered = 0
        for alert in alerts:
            try:
                if alert.symbol not in prices:
                    prices[alert.symbol] = self.market_data.get_current_price(alert.symbol)
                price = prices[alert.symbol]
                if alert.should_trigger(price):
                    with db.begin_nested():
                        self.trigger_price_alert(db, alert, price)
                    triggered += 1
            except Exception as e:
                logger.error(f"Failed to check price alert {alert.id}: {e}")
        return triggered

    # Performance milestones

    def check_performance_milestones(self, db: Session, user: User) -> List[str]:
        """
        Notify profit, win-rate, win-streak and drawdown milestones.

        Returns:
            Types of the milestone notifications sent
        """
        closed = db.query(Trade).filter(
            Trade.user_id == user.id,
            Trade.closed_at.isnot(None)
        ).order_by(Trade.closed_at.asc()).all()
        if not closed:
            return []

        sent = []
        profits = [float(t.profit or 0) for t in closed]
        total_profit = sum(profits)
        total_trades = len(closed)
        winning = sum(1 for p in profits if p > 0)
        win_rate = winning / total_trades * 100

        for milestone in PROFIT_MILESTONES:
            if milestone <= total_profit < milestone * 1.1:
                self.notify(db, user.id, "profit_milestone", {
                    "title": "Profit milestone reached",
                    "message": f"You've reached a profit milestone of ${milestone:,.2f}",
                    "milestone": milestone,
                    "value": total_profit,
                    "period": "all-time",
                })
                sent.append("profit_milestone")
                break

        if total_trades >= MIN_TRADES_FOR_WIN_RATE:
            for milestone in WIN_RATE_MILESTONES:
                if milestone <= win_rate < milestone + 5:
                    self.notify(db, user.id, "win_rate_milestone", {
                        "title": "Win rate milestone",
                        "message": (f"Your win rate has reached {milestone}% with {winning} winning trades "
                                    f"out of {total_trades} total trades"),
                        "milestone": milestone,
                        "value": win_rate,
                        "total_trades": total_trades,
                        "winning_trades": winning,
                    })
                    sent.append("win_rate_milestone")
                    break

        streak = consecutive_wins(reversed(profits[-10:]))
        if streak in WIN_STREAK_MILESTONES:
            self.notify(db, user.id, "win_streak", {
                "title": "Winning streak",
                "message": f"You've achieved {streak} consecutive winning trades!",
                "value": streak,
            })
            sent.append("win_streak")

        drawdown, peak = equity_drawdown(profits)
        for threshold in DRAWDOWN_THRESHOLDS:
            if threshold <= drawdown < threshold + 5:
                self.notify(db, user.id, "drawdown_alert", {
                    "title": "Drawdown alert",
                    "message": f"Your account is experiencing a drawdown of {drawdown:.2f}% from its peak",
                    "threshold": threshold,
                    "value": drawdown,
                    "peak_equity": peak,
                    "current_equity": total_profit,
                })
                sent.append("drawdown_alert")
                break

        return sent

    def check_all_milestones(self, db: Session) -> int:
        """Run milestone checks for every user with closed trades."""
        user_ids = [row[0] for row in db.query(Trade.user_id).filter(Trade.closed_at.isnot(None)).distinct()]
        checked = 0
        for user_id in user_ids:
            try:
                user = db.get(User, user_id)
                if user is not None:
                    with db.begin_nested():
                        self.check_performance_milestones(db, user)
                    checked += 1
            except Exception as e:
                logger.error(f"Milestone check failed for user {user_id}: {e}")
        return checked


def consecutive_wins(profits_newest_first: Iterable[float]) -> int:
    """Count winning trades from the most recent backwards."""
    count = 0
    for profit in profits_newest_first:
        if profit > 0:
            count += 1
        else:
            break
    return count


def equity_drawdown(profits: List[float]):
    """Current fall of cumulative profit from its peak, as (percent, peak)."""
    peak = 0.0
    running = 0.0
    for profit in profits:
        running += profit
        peak = max(peak, running)
    if peak <= 0:
        return 0.0, peak
    return (peak - running) / peak * 100, peak


# Global notification service instance
notification_service = NotificationService()
