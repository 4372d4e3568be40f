"""
Copy trading service.

Copiers subscribe to a trader under the trader's privacy rules. Every
closed trade the trader records is replicated to each active copier,
scaled by the copier's risk allocation or replaced by a fixed lot size.
A copier whose 30-day losses on the relationship reach their maximum
drawdown is paused automatically.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Any

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db_session
from app.core.exceptions import (
    CopyTradingNotAllowedError, InvalidStateError, NotAuthorizedError, NotFoundError, ValidationError
)
from app.models.copy_trading import (
    CopyTradingRelationship, CopyTradingSettings, CopyStatus, ApprovalStatus, PrivacyLevel
)
from app.models.trade import Trade, TradeSide
from app.models.user import User, Follow
from app.services.notification_service import notification_service
from app.services.wallet_service import wallet_service
from app.strategies.pricing import normalize_pair, trade_profit

logger = logging.getLogger(__name__)

STATUS_ORDER = case(
    (CopyTradingRelationship.status == CopyStatus.ACTIVE, 1),
    (CopyTradingRelationship.status == CopyStatus.PAUSED, 2),
    (CopyTradingRelationship.status == CopyStatus.STOPPED, 3),
    else_=4,
)

# Fallback balance for the drawdown check when a copier has none
DEFAULT_COPIER_BALANCE = 10000.0


class CopyTradingService:
    """Service for copy trading relationships and trade replication."""

    def __init__(self, notifications=None, wallets=None):
        self.notifications = notifications or notification_service
        self.wallets = wallets or wallet_service

    # Trader settings

    def get_settings(self, db: Session, user_id: int) -> CopyTradingSettings:
        """Fetch a trader's settings, creating public auto-approve defaults."""
        trader_settings = db.query(CopyTradingSettings).filter(CopyTradingSettings.user_id == user_id).first()
        if trader_settings is None:
            trader_settings = CopyTradingSettings(
                user_id=user_id,
                privacy_level=PrivacyLevel.PUBLIC,
                auto_approve_followers=True,
                notify_on_copy_request=True,
            )
            db.add(trader_settings)
            db.flush()
        return trader_settings

    def update_settings(self, db: Session, user_id: int, privacy_level: str,
                        auto_approve_followers: bool = None, notify_on_copy_request: bool = None,
                        copy_trading_bio: str = None) -> CopyTradingSettings:
        try:
            level = PrivacyLevel(privacy_level)
        except ValueError:
            raise ValidationError("Privacy level must be one of: public, followers_only, approved_only, private.")
        if copy_trading_bio is not None and len(copy_trading_bio) > 500:
            raise ValidationError("Bio may not be longer than 500 characters.")

        trader_settings = self.get_settings(db, user_id)
        trader_settings.privacy_level = level
        if auto_approve_followers is not None:
            trader_settings.auto_approve_followers = auto_approve_followers
        if notify_on_copy_request is not None:
            trader_settings.notify_on_copy_request = notify_on_copy_request
        if copy_trading_bio is not None:
            trader_settings.copy_trading_bio = copy_trading_bio
        db.flush()
        return trader_settings

    def get_settings_overview(self, db: Session, user_id: int) -> Dict[str, Any]:
        """Settings plus pending requests and current copiers."""
        trader_settings = self.get_settings(db, user_id)
        pending = db.query(CopyTradingRelationship).filter(
            CopyTradingRelationship.trader_user_id == user_id,
            CopyTradingRelationship.approval_status == ApprovalStatus.PENDING
        ).all()
        copiers = db.query(CopyTradingRelationship).filter(
            CopyTradingRelationship.trader_user_id == user_id,
            CopyTradingRelationship.approval_status == ApprovalStatus.APPROVED,
            CopyTradingRelationship.status != CopyStatus.STOPPED
        ).all()
        total_copiers = db.query(CopyTradingRelationship).filter(
            CopyTradingRelationship.trader_user_id == user_id,
            CopyTradingRelationship.approval_status == ApprovalStatus.APPROVED
        ).count()
        return {
            "settings": trader_settings.to_dict(),
            "pending_requests": [r.to_dict() for r in pending],
            "active_copiers": [r.to_dict() for r in copiers],
            "stats": {"total_copiers": total_copiers, "pending_requests": len(pending)},
        }

    # Relationships

    def start_copying(self, db: Session, copier_id: int, trader_id: int, risk_allocation_percentage: float,
                      max_drawdown_percentage: float = None, copy_fixed_size: bool = False,
                      fixed_lot_size: float = None, copy_stop_loss: bool = True,
                      copy_take_profit: bool = True) -> Dict[str, Any]:
        """
        Create a relationship subject to the trader's privacy level.

        Private traders refuse all copiers. Followers-only traders require
        the copier to follow them and hold the request for approval unless
        auto-approve is on. Approved-only traders always hold it. Held
        requests start paused.
        """
        if copier_id == trader_id:
            raise ValidationError("You cannot copy your own trades.")
        self._validate_sizing(risk_allocation_percentage, max_drawdown_percentage, copy_fixed_size, fixed_lot_size)

        self.wallets.get_user(db, copier_id)
        trader = db.get(User, trader_id)
        if trader is None:
            raise NotFoundError("Trader", trader_id)

        existing = db.query(CopyTradingRelationship).filter(
            CopyTradingRelationship.copier_user_id == copier_id,
            CopyTradingRelationship.trader_user_id == trader_id,
            CopyTradingRelationship.status == CopyStatus.ACTIVE
        ).first()
        if existing:
            raise InvalidStateError("You are already actively copying this trader.")

        trader_settings = self.get_settings(db, trader_id)
        approval = ApprovalStatus.APPROVED
        status = CopyStatus.ACTIVE

        if trader_settings.privacy_level == PrivacyLevel.PRIVATE:
            raise CopyTradingNotAllowedError("This trader does not allow copy trading.")
        if trader_settings.privacy_level == PrivacyLevel.FOLLOWERS_ONLY:
            following = db.query(Follow).filter(
                Follow.follower_id == copier_id,
                Follow.following_id == trader_id
            ).first()
            if following is None:
                raise CopyTradingNotAllowedError("You need to follow this trader before you can copy their trades.")
            if not trader_settings.auto_approve_followers:
                approval = ApprovalStatus.PENDING
                status = CopyStatus.PAUSED
        elif trader_settings.privacy_level == PrivacyLevel.APPROVED_ONLY:
            approval = ApprovalStatus.PENDING
            status = CopyStatus.PAUSED

        relationship = CopyTradingRelationship(
            copier_user_id=copier_id,
            trader_user_id=trader_id,
            status=status,
            approval_status=approval,
            risk_allocation_percentage=risk_allocation_percentage,
            max_drawdown_percentage=max_drawdown_percentage,
            copy_fixed_size=copy_fixed_size,
            fixed_lot_size=fixed_lot_size if copy_fixed_size else None,
            copy_stop_loss=copy_stop_loss,
            copy_take_profit=copy_take_profit,
            started_at=datetime.now(),
        )
        db.add(relationship)
        db.flush()

        self._notify_copier(db, relationship, "copy_trade_started", f"You started copying {trader.name}.")

        if approval == ApprovalStatus.PENDING:
            if trader_settings.notify_on_copy_request:
                self.notifications.notify(db, trader_id, "copy_request", {
                    "title": "New copy trading request",
                    "message": f"{relationship.copier.name} wants to copy your trades.",
                    "relationship_id": relationship.id,
                    "copier_id": copier_id,
                })
            message = f"Your copy trading request has been sent to {trader.name} for approval."
        else:
            self.notifications.notify(db, trader_id, "new_copier", {
                "title": "New copier",
                "message": f"{relationship.copier.name} started copying your trades.",
                "relationship_id": relationship.id,
                "copier_id": copier_id,
            })
            message = f"You are now copying trades from {trader.name}"

        logger.info(f"User {copier_id} copy request for trader {trader_id}: {approval.value}")
        return {"success": True, "relationship": relationship, "message": message}

    def get_relationship(self, db: Session, relationship_id: int) -> CopyTradingRelationship:
        relationship = db.get(CopyTradingRelationship, relationship_id)
        if relationship is None:
            raise NotFoundError("Copy trading relationship", relationship_id)
        return relationship

    def update_relationship(self, db: Session, user_id: int, relationship_id: int, status: str,
                            **changes) -> CopyTradingRelationship:
        """Pause or resume a relationship and optionally change its sizing."""
        relationship = self._as_copier(db, user_id, relationship_id, "update")
        try:
            new_status = CopyStatus(status)
        except ValueError:
            raise ValidationError("Status must be active or paused.")
        if new_status == CopyStatus.STOPPED:
            raise ValidationError("Status must be active or paused.")
        if new_status == CopyStatus.ACTIVE and relationship.approval_status != ApprovalStatus.APPROVED:
            raise InvalidStateError("This relationship has not been approved by the trader.")

        allowed = {
            "risk_allocation_percentage", "max_drawdown_percentage", "copy_fixed_size",
            "fixed_lot_size", "copy_stop_loss", "copy_take_profit",
        }
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        merged = {
            "risk_allocation_percentage": float(relationship.risk_allocation_percentage),
            "max_drawdown_percentage": (float(relationship.max_drawdown_percentage)
                                        if relationship.max_drawdown_percentage is not None else None),
            "copy_fixed_size": bool(relationship.copy_fixed_size),
            "fixed_lot_size": float(relationship.fixed_lot_size) if relationship.fixed_lot_size is not None else None,
        }
        merged.update({k: v for k, v in changes.items() if k in merged})
        self._validate_sizing(merged["risk_allocation_percentage"], merged["max_drawdown_percentage"],
                              merged["copy_fixed_size"], merged["fixed_lot_size"])

        old_status = relationship.status
        relationship.status = new_status
        for name, value in changes.items():
            setattr(relationship, name, value)
        db.flush()

        if old_status != new_status:
            kind = "copy_trade_resumed" if new_status == CopyStatus.ACTIVE else "copy_trade_paused"
            action = "resumed" if new_status == CopyStatus.ACTIVE else "paused"
            self._notify_copier(db, relationship, kind, f"You {action} copying {relationship.trader.name}.")
        return relationship

    def stop_copying(self, db: Session, user_id: int, relationship_id: int) -> CopyTradingRelationship:
        relationship = self._as_copier(db, user_id, relationship_id, "stop")
        relationship.status = CopyStatus.STOPPED
        relationship.stopped_at = datetime.now()
        db.flush()
        self._notify_copier(db, relationship, "copy_trade_stopped",
                            f"You stopped copying {relationship.trader.name}.")
        logger.info(f"User {user_id} stopped copying trader {relationship.trader_user_id}")
        return relationship

    def reactivate(self, db: Session, user_id: int, relationship_id: int) -> CopyTradingRelationship:
        relationship = self._as_copier(db, user_id, relationship_id, "reactivate")
        if relationship.status != CopyStatus.STOPPED:
            raise InvalidStateError("Only stopped relationships can be reactivated.")
        if relationship.approval_status != ApprovalStatus.APPROVED:
            raise InvalidStateError("This relationship has not been approved by the trader.")
        relationship.status = CopyStatus.ACTIVE
        relationship.stopped_at = None
        relationship.started_at = datetime.now()
        db.flush()
        self._notify_copier(db, relationship, "copy_trade_resumed",
                            f"You reactivated copying {relationship.trader.name}.")
        return relationship

    def approve_request(self, db: Session, user_id: int, relationship_id: int) -> CopyTradingRelationship:
        relationship = self._as_trader(db, user_id, relationship_id, "approve this request")
        if relationship.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError("Only pending requests can be approved.")
        relationship.approval_status = ApprovalStatus.APPROVED
        relationship.status = CopyStatus.ACTIVE
        db.flush()
        self.notifications.notify(db, relationship.copier_user_id, "copy_request_approved", {
            "title": "Copy request approved",
            "message": f"{relationship.trader.name} approved your copy trading request.",
            "relationship_id": relationship.id,
        })
        return relationship

    def reject_request(self, db: Session, user_id: int, relationship_id: int) -> CopyTradingRelationship:
        relationship = self._as_trader(db, user_id, relationship_id, "reject this request")
        self._close_by_trader(db, relationship)
        self.notifications.notify(db, relationship.copier_user_id, "copy_request_rejected", {
            "title": "Copy request rejected",
            "message": f"{relationship.trader.name} rejected your copy trading request.",
            "relationship_id": relationship.id,
        })
        return relationship

    def block_copier(self, db: Session, user_id: int, relationship_id: int) -> CopyTradingRelationship:
        relationship = self._as_trader(db, user_id, relationship_id, "block this copier")
        self._close_by_trader(db, relationship)
        self.notifications.notify(db, relationship.copier_user_id, "copy_trade_blocked", {
            "title": "Copying blocked",
            "message": f"{relationship.trader.name} has blocked you from copying their trades.",
            "relationship_id": relationship.id,
        })
        logger.info(f"Trader {user_id} blocked copier {relationship.copier_user_id}")
        return relationship

    def list_relationships(self, db: Session, user_id: int) -> Dict[str, List[CopyTradingRelationship]]:
        """Relationships as copier and as trader, active first."""
        copying = db.query(CopyTradingRelationship).filter(
            CopyTradingRelationship.copier_user_id == user_id
        ).order_by(STATUS_ORDER, CopyTradingRelationship.created_at.desc()).all()
        copiers = db.query(CopyTradingRelationship).filter(
            CopyTradingRelationship.trader_user_id == user_id
        ).order_by(STATUS_ORDER, CopyTradingRelationship.created_at.desc()).all()
        return {"copying": copying, "copiers": copiers}

    # Statistics

    def get_dashboard_stats(self, db: Session, user_id: int) -> Dict[str, Any]:
        relationships = self.list_relationships(db, user_id)
        copying = relationships["copying"]
        copiers = relationships["copiers"]

        active = sum(1 for r in copying if r.status == CopyStatus.ACTIVE)
        paused = sum(1 for r in copying if r.status == CopyStatus.PAUSED)
        stopped = sum(1 for r in copying if r.status == CopyStatus.STOPPED)

        copied_closed = db.query(Trade).filter(
            Trade.user_id == user_id,
            Trade.copied_from_trade_id.isnot(None),
            Trade.closed_at.isnot(None)
        )
        total_profit = sum(float(t.profit or 0) for t in copied_closed.all())

        since = datetime.now() - timedelta(days=30)
        recent = copied_closed.filter(Trade.closed_at >= since).all()
        win_rate = 0
        if recent:
            wins = sum(1 for t in recent if t.profit is not None and float(t.profit) > 0)
            win_rate = round(wins / len(recent) * 100)

        return {
            "active": active,
            "paused": paused,
            "stopped": stopped,
            "total": len(copying),
            "followers": len(copiers),
            "total_copying": active + paused,
            "total_profit": round(total_profit, 2),
            "total_copiers": sum(1 for r in copiers if r.status != CopyStatus.STOPPED),
            "win_rate": win_rate,
        }

    def get_performance(self, db: Session, user_id: int, relationship_id: int) -> Dict[str, Any]:
        """Summary, trades and balance curve of a relationship's copied trades."""
        relationship = self._as_copier(db, user_id, relationship_id, "view")
        trades = db.query(Trade).filter(
            Trade.user_id == user_id,
            Trade.copy_trading_relationship_id == relationship.id
        ).order_by(Trade.closed_at.desc()).all()

        profits = [float(t.profit or 0) for t in trades]
        total = len(trades)
        winning = sum(1 for p in profits if p > 0)
        losing = sum(1 for p in profits if p < 0)
        gross_profit = sum(p for p in profits if p > 0)
        gross_loss = abs(sum(p for p in profits if p < 0))
        if gross_loss > 0:
            profit_factor = round(gross_profit / gross_loss, 2)
        else:
            profit_factor = 999 if gross_profit > 0 else 0

        curve = []
        running = 0.0
        for trade in sorted((t for t in trades if t.closed_at), key=lambda t: t.closed_at):
            running += float(trade.profit or 0)
            curve.append([int(trade.closed_at.timestamp() * 1000), round(running, 2)])

        return {
            "relationship": relationship.to_dict(),
            "summary": {
                "total_trades": total,
                "winning_trades": winning,
                "losing_trades": losing,
                "win_rate": round(winning / total * 100, 2) if total else 0,
                "total_profit": round(sum(profits), 2),
                "average_profit": round(sum(profits) / total, 2) if total else 0,
                "profit_factor": profit_factor,
            },
            "trades": [t.to_dict() for t in trades],
            "equity_curve": {"series": [{"name": "Balance", "data": curve}]},
        }

    def get_top_traders(self, db: Session, limit: int = 5) -> Dict[str, Any]:
        """Traders with the most non-stopped copiers and recent original trades."""
        copier_count = func.count(CopyTradingRelationship.id).label("copiers_count")
        rows = db.query(User, copier_count).join(
            CopyTradingRelationship, CopyTradingRelationship.trader_user_id == User.id
        ).filter(
            CopyTradingRelationship.status != CopyStatus.STOPPED
        ).group_by(User.id).order_by(copier_count.desc()).limit(limit).all()

        month_start = datetime.now().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        traders = []
        for user, copiers_count in rows:
            originals = db.query(Trade).filter(
                Trade.user_id == user.id,
                Trade.copied_from_trade_id.is_(None)
            ).all()
            closed = [t for t in originals if t.closed_at is not None]
            wins = sum(1 for t in closed if t.profit is not None and float(t.profit) > 0)
            monthly = sum(float(t.profit or 0) for t in closed if _naive(t.closed_at) >= month_start)
            with_stop = sum(1 for t in originals if t.stop_loss is not None)
            stop_pct = with_stop / len(originals) * 100 if originals else 0

            traders.append({
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "win_rate": round(wins / len(closed) * 100) if closed else 0,
                "followers": copiers_count,
                "monthly_return": round(monthly, 2),
                "trades": len(originals),
                "strategy": trading_style([t.duration_minutes for t in closed if t.duration_minutes is not None]),
                "risk": "Low" if stop_pct >= 90 else ("High" if stop_pct <= 50 else "Medium"),
            })

        recent = db.query(Trade).filter(
            Trade.copied_from_trade_id.is_(None),
            Trade.closed_at.isnot(None)
        ).order_by(Trade.closed_at.desc()).limit(10).all()
        recent_trades = [{
            "trader": t.user.name,
            "trader_id": t.user_id,
            "pair": t.symbol,
            "type": t.type.value,
            "amount": float(t.lot_size),
            "profit": float(t.profit or 0),
            "closed_at": t.closed_at.isoformat(),
            "take_profit": float(t.take_profit) if t.take_profit is not None else None,
            "stop_loss": float(t.stop_loss) if t.stop_loss is not None else None,
        } for t in recent]

        return {"top_traders": traders, "recent_trades": recent_trades}

    # Trades and replication

    def record_trade(self, db: Session, user_id: int, symbol: str, side: str, entry_price: float,
                     lot_size: float, exit_price: float = None, stop_loss: float = None,
                     take_profit: float = None, opened_at: datetime = None,
                     closed_at: datetime = None) -> Trade:
        """Store a trader's trade; a closed trade's profit comes from the pip formula."""
        self.wallets.get_user(db, user_id)
        try:
            trade_side = TradeSide(side.lower())
        except ValueError:
            raise ValidationError("Trade type must be buy or sell.")
        if lot_size <= 0:
            raise ValidationError("Lot size must be greater than zero.")
        if entry_price <= 0 or (exit_price is not None and exit_price <= 0):
            raise ValidationError("Prices must be greater than zero.")

        opened_at = opened_at or datetime.now()
        if exit_price is not None and closed_at is None:
            closed_at = datetime.now()
        if closed_at is not None and exit_price is None:
            raise ValidationError("A closed trade needs an exit price.")
        if closed_at is not None and _naive(closed_at) < _naive(opened_at):
            raise ValidationError("Close time cannot be before open time.")

        symbol = normalize_pair(symbol)
        trade = Trade(
            user_id=user_id,
            symbol=symbol,
            type=trade_side,
            lot_size=lot_size,
            entry_price=entry_price,
            exit_price=exit_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            profit=(trade_profit(trade_side.value, entry_price, exit_price, lot_size, symbol)
                    if exit_price is not None else None),
            opened_at=opened_at,
            closed_at=closed_at,
        )
        db.add(trade)
        db.flush()
        logger.info(f"Recorded {trade_side.value} {lot_size} {symbol} trade {trade.id} for user {user_id}")
        return trade

    def calculate_lot_size(self, relationship: CopyTradingRelationship, original_lot_size: float) -> float:
        """Fixed lot when configured, otherwise the original scaled by risk allocation."""
        if relationship.copy_fixed_size and relationship.fixed_lot_size:
            return float(relationship.fixed_lot_size)
        return round(original_lot_size * float(relationship.risk_allocation_percentage) / 100, 2)

    def replicate_trade(self, db: Session, trade: Trade) -> List[Trade]:
        """
        Copy a trader's trade to every active copier.

        Each copier runs in its own savepoint; a failure is logged, leaves
        no copy behind and the remaining copiers are still processed.
        """
        if trade.is_copy:
            return []

        relationships = db.query(CopyTradingRelationship).filter(
            CopyTradingRelationship.trader_user_id == trade.user_id,
            CopyTradingRelationship.status == CopyStatus.ACTIVE,
            CopyTradingRelationship.approval_status == ApprovalStatus.APPROVED
        ).all()
        if not relationships:
            logger.info(f"No active copy trading relationships for trader {trade.user_id}")
            return []

        logger.info(f"Replicating trade {trade.id} to {len(relationships)} copiers")
        copies = []
        for relationship in relationships:
            if relationship.copier is None:
                logger.warning(f"Copier not found for relationship {relationship.id}")
                continue
            copier_id = relationship.copier_user_id
            try:
                with db.begin_nested():
                    copy = self._copy_for(db, trade, relationship)
                    self._check_max_drawdown(db, relationship)
                    self.notifications.notify(db, copier_id, "trade_copied", {
                        "title": "Trade copied",
                        "message": f"Copied {copy.type.value} {float(copy.lot_size)} {copy.symbol} "
                                   f"from {relationship.trader.name}",
                        "relationship_id": relationship.id,
                        "trade": copy.to_dict(),
                    })
                copies.append(copy)
                logger.info(f"Copied trade {trade.id} for copier {copier_id}")
            except Exception as e:
                logger.error(f"Error copying trade {trade.id} for copier {copier_id}: {e}")
        return copies

    def _copy_for(self, db: Session, trade: Trade, relationship: CopyTradingRelationship) -> Trade:
        lot_size = self.calculate_lot_size(relationship, float(trade.lot_size))
        entry = float(trade.entry_price)
        exit_price = float(trade.exit_price) if trade.exit_price is not None else None
        copy = Trade(
            user_id=relationship.copier_user_id,
            symbol=trade.symbol,
            type=trade.type,
            lot_size=lot_size,
            entry_price=entry,
            exit_price=exit_price,
            profit=(trade_profit(trade.type.value, entry, exit_price, lot_size, trade.symbol)
                    if exit_price is not None else None),
            stop_loss=trade.stop_loss if relationship.copy_stop_loss else None,
            take_profit=trade.take_profit if relationship.copy_take_profit else None,
            opened_at=trade.opened_at,
            closed_at=trade.closed_at,
            copied_from_trade_id=trade.id,
            copy_trading_relationship_id=relationship.id,
        )
        db.add(copy)
        db.flush()
        return copy

    def _check_max_drawdown(self, db: Session, relationship: CopyTradingRelationship) -> bool:
        """Pause the relationship when recent copied losses reach the copier's limit."""
        if not relationship.max_drawdown_percentage:
            return False

        since = datetime.now() - timedelta(days=settings.copy_drawdown_lookback_days)
        losses = db.query(Trade).filter(
            Trade.user_id == relationship.copier_user_id,
            Trade.copy_trading_relationship_id == relationship.id,
            Trade.profit < 0,
            Trade.closed_at >= since
        ).all()
        total_loss = abs(sum(float(t.profit) for t in losses))

        balance = float(relationship.copier.account_balance or 0) or DEFAULT_COPIER_BALANCE
        drawdown = total_loss / balance * 100
        if drawdown < float(relationship.max_drawdown_percentage):
            return False

        logger.warning(f"Max drawdown reached for relationship {relationship.id}, pausing copy trading")
        relationship.status = CopyStatus.PAUSED
        db.flush()
        self.notifications.notify(db, relationship.copier_user_id, "max_drawdown_reached", {
            "title": "Copy trading paused",
            "message": (f"Copying {relationship.trader.name} was paused after a {drawdown:.2f}% drawdown "
                        f"reached your {float(relationship.max_drawdown_percentage):g}% limit."),
            "relationship_id": relationship.id,
            "drawdown_percentage": drawdown,
        })
        return True

    # Helpers

    def _validate_sizing(self, risk_allocation: float, max_drawdown: Optional[float],
                         copy_fixed_size: bool, fixed_lot_size: Optional[float]):
        if risk_allocation is None or not 0.01 <= risk_allocation <= 100:
            raise ValidationError("Risk allocation must be between 0.01 and 100.")
        if max_drawdown is not None and not 0.01 <= max_drawdown <= 100:
            raise ValidationError("Maximum drawdown must be between 0.01 and 100.")
        if copy_fixed_size and fixed_lot_size is None:
            raise ValidationError("A fixed lot size is required when copying with a fixed size.")
        if fixed_lot_size is not None and fixed_lot_size < 0.01:
            raise ValidationError("Fixed lot size must be at least 0.01.")

    def _as_copier(self, db: Session, user_id: int, relationship_id: int, action: str) -> CopyTradingRelationship:
        relationship = self.get_relationship(db, relationship_id)
        if relationship.copier_user_id != user_id:
            raise NotAuthorizedError(f"You are not authorized to {action} this relationship.")
        return relationship

    def _as_trader(self, db: Session, user_id: int, relationship_id: int, action: str) -> CopyTradingRelationship:
        relationship = self.get_relationship(db, relationship_id)
        if relationship.trader_user_id != user_id:
            raise NotAuthorizedError(f"You are not authorized to {action}.")
        return relationship

    def _close_by_trader(self, db: Session, relationship: CopyTradingRelationship):
        relationship.approval_status = ApprovalStatus.REJECTED
        relationship.status = CopyStatus.STOPPED
        relationship.stopped_at = datetime.now()
        db.flush()

    def _notify_copier(self, db: Session, relationship: CopyTradingRelationship, kind: str, message: str):
        self.notifications.notify(db, relationship.copier_user_id, kind, {
            "title": "Copy trading",
            "message": message,
            "relationship_id": relationship.id,
            "trader_id": relationship.trader_user_id,
        })


def trading_style(durations_minutes: List[int]) -> str:
    """Label a trader by average holding time."""
    if not durations_minutes:
        return "Mixed"
    average = sum(durations_minutes) / len(durations_minutes)
    if average < 60:
        return "Scalping"
    if average < 1440:
        return "Day Trading"
    if average < 10080:
        return "Swing Trading"
    return "Position Trading"


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None) if value is not None and value.tzinfo else value


# Global copy trading service instance
copy_trading_service = CopyTradingService()


def process_copy_trade(trade_id: int) -> int:
    """Background job: replicate a recorded trade in its own session."""
    try:
        with get_db_session() as db:
            trade = db.get(Trade, trade_id)
            if trade is None:
                logger.warning(f"Trade {trade_id} not found for copy processing")
                return 0
            return len(copy_trading_service.replicate_trade(db, trade))
    except Exception as e:
        logger.error(f"Copy trade processing failed for trade {trade_id}: {e}")
        return 0
