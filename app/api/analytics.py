"""
Analytics API endpoints: trading statistics, equity curve and backtest performance.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id
from app.core.database import get_db
from app.services.trading_stats import trading_stats_service, performance_calculation_service

logger = logging.getLogger(__name__)
router = APIRouter()


class BacktestRequest(BaseModel):
    trades: List[Dict[str, Any]]
    initial_capital: float = Field(10000, gt=0)


@router.get("/stats")
async def get_trading_stats(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        stats = trading_stats_service.calculate_stats(db, user_id)
        stats["timestamp"] = datetime.now().isoformat()
        return stats
    except Exception as e:
        logger.error(f"Error calculating trading stats for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to calculate trading stats: {e}")


@router.get("/equity-curve")
async def get_equity_curve(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return trading_stats_service.equity_curve(db, user_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to build equity curve: {e}")


@router.post("/backtest/performance")
async def calculate_backtest_performance(request: BacktestRequest):
    """Net profit and win rate for a list of backtest trades."""
    try:
        return performance_calculation_service.calculate_performance(request.trades, request.initial_capital)
    except Exception as e:
        logger.error(f"Error calculating backtest performance: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to calculate performance: {e}")
