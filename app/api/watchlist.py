"""
Watchlist API endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.wallet_service import wallet_service
from app.services.watchlist_service import watchlist_service

logger = logging.getLogger(__name__)
router = APIRouter()


class WatchlistRequest(BaseModel):
    symbol: str


@router.get("")
async def get_watchlist(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Watched symbols with current quotes."""
    try:
        items = watchlist_service.list_with_quotes(db, user_id)
        return {"watchlist": items, "count": len(items)}
    except Exception as e:
        logger.error(f"Error loading watchlist for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load watchlist: {e}")


@router.post("", status_code=201)
async def add_symbol(request: WatchlistRequest, user_id: int = Depends(get_current_user_id),
                     db: Session = Depends(get_db)):
    try:
        wallet_service.get_user(db, user_id)
        item = watchlist_service.add_symbol(db, user_id, request.symbol)
        db.commit()
        return {"success": True, "id": str(item.id), "symbol": item.symbol}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to add symbol: {e}")


@router.delete("")
async def remove_symbol(symbol: str = Query(..., description="Symbol to remove, e.g. EUR/USD"),
                        user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        watchlist_service.remove_symbol(db, user_id, symbol)
        db.commit()
        return {"success": True, "message": f"{symbol} removed from watchlist."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to remove symbol: {e}")
