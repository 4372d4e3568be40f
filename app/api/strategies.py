"""
Trading strategy API endpoints.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.strategy_service import strategy_service

logger = logging.getLogger(__name__)
router = APIRouter()


class StrategyRequest(BaseModel):
    name: str
    description: Optional[str] = None
    type: Optional[str] = None
    risk_level: Optional[str] = None
    target_assets: Optional[str] = None
    timeframe: Optional[str] = None


@router.get("")
async def list_strategies(
    search: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    risk_level: Optional[str] = Query(None),
    timeframe: Optional[str] = Query(None),
    sort_by: str = Query("created_at"),
    sort_direction: str = Query("desc"),
    page: int = Query(1, ge=1),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """The caller's strategies, twelve per page."""
    try:
        return strategy_service.list_strategies(db, user_id, search, type, risk_level, timeframe,
                                                sort_by, sort_direction, page)
    except Exception as e:
        logger.error(f"Error listing strategies for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list strategies: {e}")


@router.post("", status_code=201)
async def create_strategy(request: StrategyRequest, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        strategy = strategy_service.create_strategy(db, user_id, request.model_dump())
        db.commit()
        return {"success": True, "strategy": strategy.to_dict(), "message": "Strategy created successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create strategy: {e}")


@router.put("/{strategy_id}")
async def update_strategy(strategy_id: int, request: StrategyRequest, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        strategy = strategy_service.update_strategy(db, user_id, strategy_id, request.model_dump())
        db.commit()
        return {"success": True, "strategy": strategy.to_dict(), "message": "Strategy updated successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update strategy: {e}")


@router.delete("/{strategy_id}")
async def delete_strategy(strategy_id: int, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        strategy_service.delete_strategy(db, user_id, strategy_id)
        db.commit()
        return {"success": True, "message": "Strategy deleted successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete strategy: {e}")
