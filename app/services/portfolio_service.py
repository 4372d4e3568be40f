"""
Portfolio service: tracked holdings, valuation, allocation and CSV
import/export.

Holdings are valued at the market data feed's current price. Symbols the
feed does not quote are carried at their average price.
"""
import io
import logging
from datetime import datetime
from typing import Any, Dict, List

import pandas as pd
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.models.portfolio import PortfolioPosition
from app.models.trading import PositionStatus, TradingPosition
from app.services.market_data import market_data_service
from app.services.wallet_service import parse_uuid
from app.strategies.pricing import normalize_pair

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["Symbol", "Name", "Quantity", "Average Price", "Category", "Notes"]
DEFAULT_CATEGORY = "Other"


class PortfolioService:
    """Service for a user's tracked holdings."""

    def __init__(self, market_data=None):
        self.market_data = market_data or market_data_service

    def _symbol(self, symbol: str) -> str:
        symbol = (symbol or "").strip().upper()
        if not symbol or len(symbol) > 20:
            raise ValidationError("Symbol is required and may not be longer than 20 characters.")
        pair = normalize_pair(symbol)
        return pair if self.market_data.is_supported(pair) else symbol

    def get_position(self, db: Session, user_id: int, position_id) -> PortfolioPosition:
        position = db.get(PortfolioPosition, parse_uuid(position_id, "Portfolio position"))
        if position is None or position.user_id != user_id:
            raise NotFoundError("Portfolio position", position_id)
        return position

    def add_position(self, db: Session, user_id: int, symbol: str, quantity: float, average_price: float,
                     name: str = None, category: str = None, notes: str = None) -> PortfolioPosition:
        """
        Add a holding, averaging into an existing one for the same symbol.

        The merged average price is the quantity-weighted mean of the held
        and the added lots.
        """
        symbol = self._symbol(symbol)
        if quantity is None or quantity <= 0:
            raise ValidationError("Quantity must be positive.")
        if average_price is None or average_price < 0:
            raise ValidationError("Average price may not be negative.")

        position = db.query(PortfolioPosition).filter(
            PortfolioPosition.user_id == user_id,
            PortfolioPosition.symbol == symbol
        ).first()

        if position is not None:
            held = float(position.quantity)
            total = held + quantity
            position.average_price = (held * float(position.average_price) + quantity * average_price) / total
            position.quantity = total
            if category is not None:
                position.category = category
            if notes is not None:
                position.notes = notes
        else:
            position = PortfolioPosition(
                user_id=user_id,
                symbol=symbol,
                name=name or symbol,
                quantity=quantity,
                average_price=average_price,
                category=category or DEFAULT_CATEGORY,
                notes=notes,
            )
            db.add(position)
        db.flush()
        logger.info(f"Portfolio position {symbol} for user {user_id}: {float(position.quantity)} held")
        return position

    def update_position(self, db: Session, user_id: int, position_id, **changes):
        """
        Change a holding; a quantity of zero removes it.

        Returns:
            The updated position, or None when it was removed
        """
        position = self.get_position(db, user_id, position_id)
        allowed = {"name", "quantity", "average_price", "category", "notes"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        quantity = changes.get("quantity")
        if quantity is not None and quantity < 0:
            raise ValidationError("Quantity may not be negative.")
        if changes.get("average_price") is not None and changes["average_price"] < 0:
            raise ValidationError("Average price may not be negative.")

        if quantity == 0:
            self.remove_position(db, user_id, position_id)
            return None

        for field, value in changes.items():
            if value is not None:
                setattr(position, field, value)
        db.flush()
        return position

    def remove_position(self, db: Session, user_id: int, position_id) -> None:
        position = self.get_position(db, user_id, position_id)
        db.delete(position)
        db.flush()
        logger.info(f"Removed portfolio position {position.symbol} for user {user_id}")

    def _price(self, position: PortfolioPosition) -> float:
        if self.market_data.is_supported(position.symbol):
            return self.market_data.get_current_price(position.symbol)
        return float(position.average_price)

    def get_summary(self, db: Session, user_id: int) -> Dict[str, Any]:
        """Holdings valued at current prices, with totals and per-category figures."""
        positions = db.query(PortfolioPosition).filter(
            PortfolioPosition.user_id == user_id
        ).order_by(PortfolioPosition.symbol).all()

        rows = []
        for position in positions:
            price = self._price(position)
            quantity = float(position.quantity)
            cost = quantity * float(position.average_price)
            value = quantity * price
            profit_loss = value - cost
            rows.append({
                **position.to_dict(),
                "category": position.category or DEFAULT_CATEGORY,
                "current_price": price,
                "current_value": round(value, 2),
                "cost": round(cost, 2),
                "profit_loss": round(profit_loss, 2),
                "profit_loss_percentage": round(profit_loss / cost * 100, 2) if cost > 0 else 0.0,
            })

        total_value = sum(r["current_value"] for r in rows)
        total_cost = sum(r["cost"] for r in rows)
        total_pl = total_value - total_cost

        categories = []
        if rows:
            df = pd.DataFrame(rows)
            grouped = df.groupby("category").agg(
                value=("current_value", "sum"),
                cost=("cost", "sum"),
                profit_loss=("profit_loss", "sum"),
                count=("symbol", "count"),
            )
            for name, data in grouped.iterrows():
                categories.append({
                    "name": name,
                    "value": round(float(data["value"]), 2),
                    "cost": round(float(data["cost"]), 2),
                    "profit_loss": round(float(data["profit_loss"]), 2),
                    "profit_loss_percentage": (round(float(data["profit_loss"]) / float(data["cost"]) * 100, 2)
                                               if data["cost"] > 0 else 0.0),
                    "percentage_of_portfolio": (round(float(data["value"]) / total_value * 100, 2)
                                                if total_value > 0 else 0.0),
                    "count": int(data["count"]),
                })

        return {
            "total_value": round(total_value, 2),
            "total_cost": round(total_cost, 2),
            "total_profit_loss": round(total_pl, 2),
            "total_profit_loss_percentage": round(total_pl / total_cost * 100, 2) if total_cost > 0 else 0.0,
            "positions_count": len(rows),
            "categories": categories,
            "positions": rows,
        }

    def get_allocation(self, db: Session, user_id: int) -> List[Dict[str, Any]]:
        """Categories ordered by current value, largest first."""
        categories = self.get_summary(db, user_id)["categories"]
        return sorted(categories, key=lambda c: c["value"], reverse=True)

    def get_performance(self, db: Session, user_id: int, months: int = 12) -> List[Dict[str, Any]]:
        """Month-end portfolio value over the last months, oldest first."""
        positions = db.query(PortfolioPosition).filter(PortfolioPosition.user_id == user_id).all()
        periods = pd.period_range(end=pd.Period(datetime.now(), freq="M"), periods=months, freq="M")
        totals = pd.Series(0.0, index=periods)

        for position in positions:
            quantity = float(position.quantity)
            if not self.market_data.is_supported(position.symbol):
                totals += quantity * float(position.average_price)
                continue
            bars = self.market_data.get_historical_bars(position.symbol, days=months * 31, timeframe="1d")
            closes = bars["close"].groupby(bars.index.to_period("M")).last()
            closes = closes.reindex(periods).ffill().bfill()
            totals += closes.fillna(0.0) * quantity

        return [{"month": period.strftime("%b %Y"), "total": round(float(value), 2)}
                for period, value in totals.items()]

    def get_open_allocations(self, db: Session, user_id: int) -> List[Dict[str, Any]]:
        """Open trading positions counted per currency pair."""
        open_positions = db.query(TradingPosition).filter(
            TradingPosition.user_id == user_id,
            TradingPosition.status == PositionStatus.OPEN
        ).all()
        counts: Dict[str, int] = {}
        for position in open_positions:
            counts[position.currency_pair] = counts.get(position.currency_pair, 0) + 1
        total = len(open_positions)
        allocations = [{"symbol": symbol, "count": count, "percentage": round(count / total * 100, 2)}
                       for symbol, count in counts.items()]
        return sorted(allocations, key=lambda a: a["count"], reverse=True)

    def get_recent_closed_trades(self, db: Session, user_id: int, limit: int = 4) -> List[Dict[str, Any]]:
        positions = db.query(TradingPosition).filter(
            TradingPosition.user_id == user_id,
            TradingPosition.status == PositionStatus.CLOSED
        ).order_by(TradingPosition.exit_time.desc()).limit(limit).all()
        return [{
            "pair": p.currency_pair,
            "type": p.trade_type.value,
            "quantity": float(p.quantity),
            "price": float(p.exit_price) if p.exit_price is not None else None,
            "profit_loss": float(p.profit_loss or 0),
            "closed_at": p.exit_time.isoformat() if p.exit_time else None,
        } for p in positions]

    def get_overview(self, db: Session, user_id: int) -> Dict[str, Any]:
        return {
            "summary": self.get_summary(db, user_id),
            "performance": self.get_performance(db, user_id),
            "recent_trades": self.get_recent_closed_trades(db, user_id),
            "open_allocations": self.get_open_allocations(db, user_id),
        }

    # CSV

    def import_csv(self, db: Session, user_id: int, content: str) -> Dict[str, Any]:
        """
        Add holdings from CSV text with a header row.

        Columns are matched by name (Symbol, Name, Quantity, Average Price,
        Category, Notes). Each row is imported on its own; bad rows are
        reported with their 1-based row number and skipped.
        """
        try:
            df = pd.read_csv(io.StringIO(content or ""), dtype=str, keep_default_na=False)
        except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
            raise ValidationError(f"Could not read CSV: {e}")
        df.columns = [str(c).strip().lower().replace(" ", "_") for c in df.columns]
        missing = {"symbol", "quantity", "average_price"} - set(df.columns)
        if missing:
            raise ValidationError(f"Missing CSV columns: {', '.join(sorted(missing))}")

        results = {"imported": 0, "failed": 0, "errors": []}
        for index, row in enumerate(df.to_dict("records"), start=1):
            try:
                with db.begin_nested():
                    self.add_position(
                        db, user_id, row["symbol"],
                        _number(row["quantity"], "quantity"),
                        _number(row["average_price"], "average price"),
                        name=row.get("name") or None,
                        category=row.get("category") or None,
                        notes=row.get("notes") or None,
                    )
                results["imported"] += 1
            except ValidationError as e:
                results["failed"] += 1
                results["errors"].append({"row": index, "message": e.message, "data": row})
        results["success"] = results["failed"] == 0
        logger.info(f"Imported {results['imported']} portfolio positions for user {user_id}, "
                    f"{results['failed']} failed")
        return results

    def export_csv(self, db: Session, user_id: int) -> str:
        positions = db.query(PortfolioPosition).filter(
            PortfolioPosition.user_id == user_id
        ).order_by(PortfolioPosition.symbol).all()
        df = pd.DataFrame(
            [[p.symbol, p.name, float(p.quantity), float(p.average_price), p.category, p.notes or ""]
             for p in positions],
            columns=EXPORT_COLUMNS,
        )
        return df.to_csv(index=False)


def _number(value: str, label: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}: {value!r}")


# Global service instance
portfolio_service = PortfolioService()
