"""
Risk management API endpoints.
"""
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.risk_manager import risk_manager

logger = logging.getLogger(__name__)
router = APIRouter()

# Position size calculator, served at /api/risk-management for the dashboard widget
calculator_router = APIRouter()


class RiskSettingsRequest(BaseModel):
    risk_percentage: float
    max_drawdown_percentage: float


class PositionSizeRequest(BaseModel):
    account_balance: float
    risk_percentage: float
    entry_price: float
    stop_loss: float
    currency_pair: str = Field(..., min_length=1)


@router.get("")
async def get_risk_dashboard(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Risk profile, sizing, metrics and drawdown alerts in one payload."""
    try:
        return risk_manager.get_dashboard(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error building risk dashboard for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get risk dashboard: {e}")


@router.get("/profile")
async def get_risk_profile(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return risk_manager.get_risk_profile(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get risk profile: {e}")


@router.get("/position-sizing")
async def get_position_sizing(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return risk_manager.get_position_sizing(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get position sizing: {e}")


@router.get("/optimal-risk-reward")
async def get_optimal_risk_reward(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return risk_manager.get_optimal_risk_reward(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get optimal risk/reward: {e}")


@router.get("/metrics")
async def get_risk_metrics(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        metrics = risk_manager.get_risk_metrics(db, user_id)
        metrics["timestamp"] = datetime.now().isoformat()
        return metrics
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get risk metrics: {e}")


@router.get("/drawdown-alerts")
async def get_drawdown_alerts(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return risk_manager.get_drawdown_alerts(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get drawdown alerts: {e}")


@router.put("/settings")
async def update_risk_settings(request: RiskSettingsRequest, user_id: int = Depends(get_current_user_id),
                               db: Session = Depends(get_db)):
    try:
        user = risk_manager.update_risk_settings(db, user_id, request.risk_percentage,
                                                 request.max_drawdown_percentage)
        db.commit()
        return {
            "success": True,
            "risk_percentage": float(user.risk_percentage),
            "max_drawdown_percentage": float(user.max_drawdown_percentage),
            "message": "Risk settings updated successfully.",
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating risk settings for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to update risk settings: {e}")


@calculator_router.post("/calculate-position-size")
async def calculate_position_size(request: PositionSizeRequest):
    try:
        return risk_manager.calculate_position_size(request.account_balance, request.risk_percentage,
                                                    request.entry_price, request.stop_loss,
                                                    request.currency_pair)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error calculating position size: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to calculate position size: {e}")
