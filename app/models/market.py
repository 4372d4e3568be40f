"""
Market reference data models: news and the economic calendar.
"""
from sqlalchemy import Column, String, Date, DateTime, Text, JSON, Numeric
from sqlalchemy.sql import func

from app.core.database import Base


class MarketNews(Base):
    """News article keyed by its URL."""
    __tablename__ = "market_news"

    url = Column(String(500), primary_key=True)
    headline = Column(String(500), nullable=False)
    summary = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=False, index=True)
    source = Column(String(100), nullable=True)
    category = Column(String(50), nullable=True, index=True)
    topics = Column(JSON, nullable=True)
    sentiment = Column(Numeric(5, 4), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<MarketNews(headline={self.headline[:40]!r}, source={self.source})>"

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "headline": self.headline,
            "summary": self.summary,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "source": self.source,
            "category": self.category,
            "topics": self.topics or [],
            "sentiment": float(self.sentiment) if self.sentiment is not None else None,
        }


class EconomicCalendarEvent(Base):
    """Scheduled macro-economic release."""
    __tablename__ = "economic_calendars"

    event_id = Column(String(100), primary_key=True)
    title = Column(String(255), nullable=False)
    country = Column(String(10), nullable=False, index=True)
    event_date = Column(Date, nullable=False, index=True)
    event_time = Column(String(5), nullable=True)
    impact = Column(String(10), nullable=False, default="medium")
    forecast = Column(String(50), nullable=True)
    previous = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<EconomicCalendarEvent(event_id={self.event_id}, title={self.title}, date={self.event_date})>"

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "title": self.title,
            "country": self.country,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "event_time": self.event_time,
            "impact": self.impact,
            "forecast": self.forecast,
            "previous": self.previous,
        }
