"""
Market API endpoints: overview, status, news and the economic calendar.
"""
import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.market_data import market_data_service
from app.services.watchlist_service import market_reference_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/overview")
async def get_market_overview():
    try:
        return market_data_service.get_market_overview()
    except Exception as e:
        logger.error(f"Error building market overview: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get market overview: {e}")


@router.get("/status")
async def get_market_status():
    return market_data_service.get_market_status()


@router.get("/news")
async def get_news(
    category: Optional[str] = Query(None),
    topic: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    try:
        news = market_reference_service.list_news(db, category, topic, source, since, limit, offset)
        return {"news": [n.to_dict() for n in news], "count": len(news)}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get market news: {e}")


@router.get("/calendar")
async def get_economic_calendar(
    country: Optional[str] = Query(None),
    impact: Optional[str] = Query(None, description="low, medium or high"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    try:
        events = market_reference_service.list_calendar(db, country, impact, date_from, date_to, limit)
        return {"events": [e.to_dict() for e in events], "count": len(events)}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get economic calendar: {e}")
