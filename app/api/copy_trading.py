"""
Copy trading API endpoints.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.copy_trading import copy_trading_service, process_copy_trade

logger = logging.getLogger(__name__)
router = APIRouter()


class CopyRequest(BaseModel):
    trader_id: int
    risk_allocation_percentage: float = 100
    max_drawdown_percentage: Optional[float] = None
    copy_fixed_size: bool = False
    fixed_lot_size: Optional[float] = None
    copy_stop_loss: bool = True
    copy_take_profit: bool = True


class CopyUpdateRequest(BaseModel):
    status: str  # 'active' or 'paused'
    risk_allocation_percentage: Optional[float] = None
    max_drawdown_percentage: Optional[float] = None
    copy_fixed_size: Optional[bool] = None
    fixed_lot_size: Optional[float] = None
    copy_stop_loss: Optional[bool] = None
    copy_take_profit: Optional[bool] = None


class CopySettingsRequest(BaseModel):
    privacy_level: str
    auto_approve_followers: Optional[bool] = None
    notify_on_copy_request: Optional[bool] = None
    copy_trading_bio: Optional[str] = None


class TradeRequest(BaseModel):
    symbol: str
    type: str  # 'buy' or 'sell'
    entry_price: float = Field(..., gt=0)
    lot_size: float = Field(..., gt=0)
    exit_price: Optional[float] = Field(None, gt=0)
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


@router.get("")
async def list_relationships(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Relationships as copier and as trader, with dashboard counts."""
    try:
        relationships = copy_trading_service.list_relationships(db, user_id)
        stats = copy_trading_service.get_dashboard_stats(db, user_id)
        db.commit()
        return {
            "copying": [r.to_dict() for r in relationships["copying"]],
            "copiers": [r.to_dict() for r in relationships["copiers"]],
            "stats": stats,
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error listing copy relationships for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list copy relationships: {e}")


@router.post("", status_code=201)
async def start_copying(request: CopyRequest, user_id: int = Depends(get_current_user_id),
                        db: Session = Depends(get_db)):
    try:
        result = copy_trading_service.start_copying(
            db, user_id, request.trader_id, request.risk_allocation_percentage,
            request.max_drawdown_percentage, request.copy_fixed_size, request.fixed_lot_size,
            request.copy_stop_loss, request.copy_take_profit
        )
        db.commit()
        return {"success": True, "relationship": result["relationship"].to_dict(), "message": result["message"]}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error starting copy relationship: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to start copying: {e}")


@router.get("/stats")
async def get_dashboard_stats(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return copy_trading_service.get_dashboard_stats(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get copy trading stats: {e}")


@router.get("/top-traders")
async def get_top_traders(limit: int = Query(5, ge=1, le=50), db: Session = Depends(get_db)):
    try:
        return copy_trading_service.get_top_traders(db, limit)
    except Exception as e:
        logger.error(f"Error fetching top traders: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get top traders: {e}")


@router.get("/settings")
async def get_copy_settings(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        overview = copy_trading_service.get_settings_overview(db, user_id)
        db.commit()
        return overview
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get copy trading settings: {e}")


@router.put("/settings")
async def update_copy_settings(request: CopySettingsRequest, user_id: int = Depends(get_current_user_id),
                               db: Session = Depends(get_db)):
    try:
        trader_settings = copy_trading_service.update_settings(
            db, user_id, request.privacy_level, request.auto_approve_followers,
            request.notify_on_copy_request, request.copy_trading_bio
        )
        db.commit()
        return {"success": True, "settings": trader_settings.to_dict(),
                "message": "Copy trading settings updated successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update copy trading settings: {e}")


@router.post("/trades", status_code=201)
async def record_trade(request: TradeRequest, background_tasks: BackgroundTasks,
                       user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Record a trade; closed trades are replicated to active copiers in the background."""
    try:
        trade = copy_trading_service.record_trade(
            db, user_id, request.symbol, request.type, request.entry_price, request.lot_size,
            request.exit_price, request.stop_loss, request.take_profit, request.opened_at, request.closed_at
        )
        db.commit()
        if trade.is_closed:
            background_tasks.add_task(process_copy_trade, trade.id)
        return {"success": True, "trade": trade.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error recording trade for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to record trade: {e}")


@router.put("/{relationship_id}")
async def update_relationship(relationship_id: int, request: CopyUpdateRequest,
                              user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        changes = request.model_dump(exclude_unset=True, exclude={"status"})
        relationship = copy_trading_service.update_relationship(db, user_id, relationship_id,
                                                                request.status, **changes)
        db.commit()
        return {"success": True, "relationship": relationship.to_dict(),
                "message": "Copy trading settings updated successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update relationship: {e}")


@router.delete("/{relationship_id}")
async def stop_copying(relationship_id: int, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        relationship = copy_trading_service.stop_copying(db, user_id, relationship_id)
        db.commit()
        return {"success": True, "relationship": relationship.to_dict(),
                "message": "You have stopped copying this trader."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to stop copying: {e}")


@router.post("/{relationship_id}/reactivate")
async def reactivate(relationship_id: int, user_id: int = Depends(get_current_user_id),
                     db: Session = Depends(get_db)):
    try:
        relationship = copy_trading_service.reactivate(db, user_id, relationship_id)
        db.commit()
        return {"success": True, "relationship": relationship.to_dict(),
                "message": "Copy trading relationship reactivated."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to reactivate relationship: {e}")


@router.post("/{relationship_id}/approve")
async def approve_request(relationship_id: int, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        relationship = copy_trading_service.approve_request(db, user_id, relationship_id)
        db.commit()
        return {"success": True, "relationship": relationship.to_dict(), "message": "Copy request approved."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to approve request: {e}")


@router.post("/{relationship_id}/reject")
async def reject_request(relationship_id: int, user_id: int = Depends(get_current_user_id),
                         db: Session = Depends(get_db)):
    try:
        relationship = copy_trading_service.reject_request(db, user_id, relationship_id)
        db.commit()
        return {"success": True, "relationship": relationship.to_dict(), "message": "Copy request rejected."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to reject request: {e}")


@router.post("/{relationship_id}/block")
async def block_copier(relationship_id: int, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        relationship = copy_trading_service.block_copier(db, user_id, relationship_id)
        db.commit()
        return {"success": True, "relationship": relationship.to_dict(), "message": "Copier blocked."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to block copier: {e}")


@router.get("/{relationship_id}/performance")
async def get_performance(relationship_id: int, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        return copy_trading_service.get_performance(db, user_id, relationship_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error fetching performance for relationship {relationship_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get performance: {e}")
