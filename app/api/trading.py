"""
Trading API endpoints.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.trading_service import trading_service


class OrderRequest(BaseModel):
    currency_pair: str
    side: str  # 'BUY' or 'SELL'
    quantity: float = Field(..., gt=0)
    stop_loss: Optional[float] = Field(None, gt=0)
    take_profit: Optional[float] = Field(None, gt=0)
    trading_wallet_id: Optional[str] = None


class TradingWalletRequest(BaseModel):
    wallet_type: str = "DEMO"
    initial_balance: float = Field(0, ge=0)
    leverage: Optional[int] = Field(None, ge=1, le=500)


logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/instruments")
async def get_instruments():
    """Tradable symbols grouped by asset class."""
    return {"instruments": trading_service.get_instruments(), "timestamp": datetime.now().isoformat()}


@router.get("/quote")
async def get_quote(pair: str = Query(..., description="Currency pair, e.g. EUR/USD")):
    try:
        return trading_service.get_quote(pair)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get quote: {e}")


@router.get("/chart")
async def get_chart_data(
    pair: str = Query(..., description="Currency pair, e.g. EUR/USD"),
    timeframe: str = Query("1d", description="1m, 5m, 15m, 30m, 1h, 4h, 1d, 1w"),
    limit: int = Query(30, ge=1, le=500)
):
    try:
        return {
            "pair": pair,
            "timeframe": timeframe,
            "bars": trading_service.get_chart_data(pair, timeframe, limit),
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get chart data: {e}")


@router.get("/wallets")
async def list_trading_wallets(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        wallets = trading_service.list_trading_wallets(db, user_id)
        for wallet in wallets:
            trading_service.refresh_trading_wallet(db, wallet)
        db.commit()
        return {"wallets": [w.to_dict() for w in wallets], "count": len(wallets)}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list trading wallets: {e}")


@router.post("/wallets", status_code=201)
async def create_trading_wallet(request: TradingWalletRequest, user_id: int = Depends(get_current_user_id),
                                db: Session = Depends(get_db)):
    try:
        wallet = trading_service.create_trading_wallet(db, user_id, request.wallet_type,
                                                       request.initial_balance, request.leverage)
        db.commit()
        return {"success": True, "wallet": wallet.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create trading wallet: {e}")


@router.get("/wallets/{wallet_id}")
async def get_trading_wallet(wallet_id: str, user_id: int = Depends(get_current_user_id),
                             db: Session = Depends(get_db)):
    """Trading wallet with its current equity and margin status."""
    try:
        wallet = trading_service.get_trading_wallet(db, user_id, wallet_id)
        trading_service.refresh_trading_wallet(db, wallet)
        db.commit()
        return wallet.to_dict()
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get trading wallet: {e}")


@router.post("/orders", status_code=201)
async def place_order(request: OrderRequest, user_id: int = Depends(get_current_user_id),
                      db: Session = Depends(get_db)):
    """Place a market order."""
    try:
        result = trading_service.place_market_order(
            db, user_id, request.currency_pair, request.side, request.quantity,
            request.stop_loss, request.take_profit, request.trading_wallet_id
        )
        db.commit()
        return {
            "success": True,
            "order": result["order"].to_dict(),
            "position": result["position"].to_dict(),
            "margin_required": result["margin_required"],
            "message": result["message"],
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error placing order: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to place order: {e}")


@router.get("/orders")
async def get_orders(limit: int = Query(50, ge=1, le=200), user_id: int = Depends(get_current_user_id),
                     db: Session = Depends(get_db)):
    try:
        orders = trading_service.get_orders(db, user_id, limit)
        return {"orders": [o.to_dict() for o in orders], "count": len(orders)}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get orders: {e}")


@router.get("/positions")
async def get_positions(status: Optional[str] = Query(None, description="OPEN, CLOSED or STOPPED"),
                        user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        positions = trading_service.get_positions(db, user_id, status)
        return {
            "positions": [p.to_dict() for p in positions],
            "count": len(positions),
            "timestamp": datetime.now().isoformat()
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get positions: {e}")


@router.get("/positions/{position_id}")
async def get_position(position_id: str, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        return trading_service.get_position(db, user_id, position_id).to_dict()
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get position: {e}")


@router.post("/positions/{position_id}/close")
async def close_position(position_id: str, user_id: int = Depends(get_current_user_id),
                         db: Session = Depends(get_db)):
    try:
        result = trading_service.close_position(db, user_id, position_id)
        db.commit()
        return {
            "success": True,
            "position": result["position"].to_dict(),
            "profit_loss": result["profit_loss"],
            "message": result["message"],
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error closing position {position_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to close position: {e}")
