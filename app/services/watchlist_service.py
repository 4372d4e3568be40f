"""
Watchlists and market reference data (news and the economic calendar).
"""
import logging
import uuid
from datetime import date, datetime
from typing import Dict, List, Any

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models.market import MarketNews, EconomicCalendarEvent
from app.models.watchlist import Watchlist
from app.services.market_data import market_data_service
from app.strategies.pricing import normalize_pair

logger = logging.getLogger(__name__)

IMPACT_LEVELS = ("low", "medium", "high")


class WatchlistService:
    """Service for user watchlists."""

    def __init__(self, market_data=None):
        self.market_data = market_data or market_data_service

    def add_symbol(self, db: Session, user_id: int, symbol: str) -> Watchlist:
        symbol = normalize_pair(symbol or "")
        if not symbol or len(symbol) > 20:
            raise ValidationError("Symbol is required and may not be longer than 20 characters.")

        existing = db.query(Watchlist).filter(Watchlist.user_id == user_id, Watchlist.symbol == symbol).first()
        if existing:
            raise InvalidStateError(f"{symbol} is already in your watchlist.")

        item = Watchlist(id=uuid.uuid4(), user_id=user_id, symbol=symbol)
        db.add(item)
        db.flush()
        return item

    def remove_symbol(self, db: Session, user_id: int, symbol: str) -> None:
        item = db.query(Watchlist).filter(
            Watchlist.user_id == user_id,
            Watchlist.symbol == normalize_pair(symbol)
        ).first()
        if item is None:
            raise NotFoundError("Watchlist symbol", symbol)
        db.delete(item)
        db.flush()

    def list_with_quotes(self, db: Session, user_id: int) -> List[Dict[str, Any]]:
        """Watched symbols with a current quote; unsupported symbols get none."""
        items = db.query(Watchlist).filter(Watchlist.user_id == user_id).order_by(Watchlist.symbol).all()
        rows = []
        for item in items:
            quote = None
            if self.market_data.is_supported(item.symbol):
                quote = self.market_data.get_quote(item.symbol)
            rows.append({"id": str(item.id), "symbol": item.symbol, "quote": quote})
        return rows


class MarketReferenceService:
    """Read access to stored market news and economic calendar events."""

    def list_news(self, db: Session, category: str = None, topic: str = None, source: str = None,
                  since: datetime = None, limit: int = 20, offset: int = 0) -> List[MarketNews]:
        query = db.query(MarketNews)
        if category:
            query = query.filter(MarketNews.category == category)
        if source:
            query = query.filter(MarketNews.source == source)
        if since:
            query = query.filter(MarketNews.published_at >= since)
        news = query.order_by(MarketNews.published_at.desc()).all()
        if topic:
            news = [n for n in news if topic in (n.topics or [])]
        return news[offset:offset + limit]

    def list_calendar(self, db: Session, country: str = None, impact: str = None,
                      date_from: date = None, date_to: date = None, limit: int = 50) -> List[EconomicCalendarEvent]:
        if impact and impact not in IMPACT_LEVELS:
            raise ValidationError("Impact must be low, medium or high.")
        query = db.query(EconomicCalendarEvent)
        if country:
            query = query.filter(EconomicCalendarEvent.country == country.upper())
        if impact:
            query = query.filter(EconomicCalendarEvent.impact == impact)
        if date_from:
            query = query.filter(EconomicCalendarEvent.event_date >= date_from)
        if date_to:
            query = query.filter(EconomicCalendarEvent.event_date <= date_to)
        return query.order_by(
            EconomicCalendarEvent.event_date.asc(), EconomicCalendarEvent.event_time.asc()
        ).limit(limit).all()


# Global service instances
watchlist_service = WatchlistService()
market_reference_service = MarketReferenceService()
