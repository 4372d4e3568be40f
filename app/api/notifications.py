"""
Notification, preference and price alert API endpoints.
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.notification_service import notification_service
from app.services.wallet_service import wallet_service

logger = logging.getLogger(__name__)
router = APIRouter()


class PriceAlertRequest(BaseModel):
    symbol: str = Field(..., max_length=20)
    condition: str  # 'above', 'below' or 'percent_change'
    price: float = Field(..., ge=0)
    percent_change: Optional[float] = None
    is_recurring: bool = False


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        notifications = notification_service.list_notifications(db, user_id, unread_only, limit, offset)
        return {
            "notifications": [n.to_dict() for n in notifications],
            "unread_count": notification_service.unread_count(db, user_id),
            "timestamp": datetime.now().isoformat()
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error listing notifications for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list notifications: {e}")


@router.get("/unread-count")
async def unread_count(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return {"unread_count": notification_service.unread_count(db, user_id)}


@router.post("/read-all")
async def mark_all_as_read(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        count = notification_service.mark_all_as_read(db, user_id)
        db.commit()
        return {"success": True, "marked": count}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to mark notifications as read: {e}")


@router.get("/preferences")
async def get_preferences(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        prefs = notification_service.get_preferences(db, user_id)
        db.commit()
        return prefs.to_dict()
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get notification preferences: {e}")


@router.put("/preferences")
async def update_preferences(changes: Dict[str, bool], user_id: int = Depends(get_current_user_id),
                             db: Session = Depends(get_db)):
    """Switch notification kinds and delivery channels on or off."""
    try:
        wallet_service.get_user(db, user_id)
        prefs = notification_service.update_preferences(db, user_id, changes)
        db.commit()
        return {"success": True, "preferences": prefs.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update notification preferences: {e}")


@router.get("/alerts")
async def list_price_alerts(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        alerts = notification_service.list_price_alerts(db, user_id)
        return {
            "active": [a.to_dict() for a in alerts["active"]],
            "triggered": [a.to_dict() for a in alerts["triggered"]],
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list price alerts: {e}")


@router.post("/alerts", status_code=201)
async def create_price_alert(request: PriceAlertRequest, user_id: int = Depends(get_current_user_id),
                             db: Session = Depends(get_db)):
    try:
        wallet_service.get_user(db, user_id)
        alert = notification_service.create_price_alert(db, user_id, request.symbol, request.condition,
                                                        request.price, request.percent_change,
                                                        request.is_recurring)
        db.commit()
        return {"success": True, "alert": alert.to_dict(), "message": "Price alert created successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating price alert for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create price alert: {e}")


@router.delete("/alerts/{alert_id}")
async def delete_price_alert(alert_id: int, user_id: int = Depends(get_current_user_id),
                             db: Session = Depends(get_db)):
    try:
        notification_service.delete_price_alert(db, user_id, alert_id)
        db.commit()
        return {"success": True, "message": "Price alert deleted successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete price alert: {e}")


@router.post("/milestones/check")
async def check_milestones(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Run the performance milestone check for the caller now."""
    try:
        user = wallet_service.get_user(db, user_id)
        sent = notification_service.check_performance_milestones(db, user)
        db.commit()
        return {"success": True, "sent": sent}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to check milestones: {e}")


@router.post("/{notification_id}/read")
async def mark_as_read(notification_id: str, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        notification = notification_service.mark_as_read(db, user_id, notification_id)
        db.commit()
        return {"success": True, "notification": notification.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to mark notification as read: {e}")
