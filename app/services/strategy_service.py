"""
Trading strategies a user describes on their profile.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.exceptions import NotAuthorizedError, NotFoundError, ValidationError
from app.models.strategy import TradingStrategy

logger = logging.getLogger(__name__)

# Field name -> maximum length
FIELD_LIMITS = {
    "name": 255,
    "description": 1000,
    "type": 50,
    "risk_level": 50,
    "target_assets": 500,
    "timeframe": 10,
}
SORT_COLUMNS = ("name", "type", "risk_level", "timeframe", "created_at", "updated_at")
PAGE_SIZE = 12


class StrategyService:
    """CRUD for a user's trading strategies."""

    def _validated(self, data: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(data) - set(FIELD_LIMITS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Strategy name is required.")
        values = {field: data.get(field) for field in FIELD_LIMITS}
        values["name"] = name
        for field, limit in FIELD_LIMITS.items():
            if values[field] is not None and len(values[field]) > limit:
                label = field.replace("_", " ").capitalize()
                raise ValidationError(f"{label} may not be longer than {limit} characters.")
        return values

    def create_strategy(self, db: Session, user_id: int, data: Dict[str, Any]) -> TradingStrategy:
        strategy = TradingStrategy(user_id=user_id, **self._validated(data))
        db.add(strategy)
        db.flush()
        logger.info(f"Strategy {strategy.id} created for user {user_id}")
        return strategy

    def _owned(self, db: Session, user_id: int, strategy_id: int) -> TradingStrategy:
        strategy = db.get(TradingStrategy, strategy_id)
        if strategy is None:
            raise NotFoundError("Strategy", strategy_id)
        if strategy.user_id != user_id:
            raise NotAuthorizedError("You can only change your own strategies.")
        return strategy

    def update_strategy(self, db: Session, user_id: int, strategy_id: int, data: Dict[str, Any]) -> TradingStrategy:
        """Replace a strategy's fields; the name stays required."""
        strategy = self._owned(db, user_id, strategy_id)
        for field, value in self._validated(data).items():
            setattr(strategy, field, value)
        db.flush()
        return strategy

    def delete_strategy(self, db: Session, user_id: int, strategy_id: int) -> None:
        strategy = self._owned(db, user_id, strategy_id)
        db.delete(strategy)
        db.flush()
        logger.info(f"Strategy {strategy_id} deleted by user {user_id}")

    def list_strategies(self, db: Session, user_id: int, search: str = None, type: str = None,
                        risk_level: str = None, timeframe: str = None, sort_by: str = "created_at",
                        sort_direction: str = "desc", page: int = 1, per_page: int = PAGE_SIZE) -> Dict[str, Any]:
        """
        A page of the user's strategies.

        Unknown sort columns fall back to newest first.
        """
        query = db.query(TradingStrategy).filter(TradingStrategy.user_id == user_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                TradingStrategy.name.ilike(pattern),
                TradingStrategy.description.ilike(pattern),
            ))
        if type:
            query = query.filter(TradingStrategy.type == type)
        if risk_level:
            query = query.filter(TradingStrategy.risk_level == risk_level)
        if timeframe:
            query = query.filter(TradingStrategy.timeframe == timeframe)

        if sort_by not in SORT_COLUMNS:
            sort_by, sort_direction = "created_at", "desc"
        column = getattr(TradingStrategy, sort_by)
        if sort_direction == "asc":
            query = query.order_by(column.asc(), TradingStrategy.id.asc())
        else:
            sort_direction = "desc"
            query = query.order_by(column.desc(), TradingStrategy.id.desc())

        page = max(page, 1)
        total = query.count()
        strategies = query.offset((page - 1) * per_page).limit(per_page).all()
        return {
            "strategies": [s.to_dict() for s in strategies],
            "total": total,
            "page": page,
            "per_page": per_page,
            "last_page": max((total + per_page - 1) // per_page, 1),
            "sort": {"by": sort_by, "direction": sort_direction},
        }

    def strategies_for(self, db: Session, user_id: int) -> List[Dict[str, Any]]:
        """Newest first, in the short form shown on a trader's profile."""
        strategies = db.query(TradingStrategy).filter(
            TradingStrategy.user_id == user_id
        ).order_by(TradingStrategy.created_at.desc(), TradingStrategy.id.desc()).all()
        return [{"id": s.id, "name": s.name, "description": s.description} for s in strategies]


# Global service instance
strategy_service = StrategyService()
