"""
Portfolio API endpoints.
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.portfolio_service import portfolio_service

logger = logging.getLogger(__name__)
router = APIRouter()


class PositionRequest(BaseModel):
    symbol: str = Field(..., max_length=20)
    name: Optional[str] = Field(None, max_length=100)
    quantity: float = Field(..., gt=0)
    average_price: float = Field(..., ge=0)
    category: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)


class PositionUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    quantity: Optional[float] = Field(None, ge=0)
    average_price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)


@router.get("")
async def get_portfolio(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Holdings summary, monthly performance, recent trades and open-position allocation."""
    try:
        return portfolio_service.get_overview(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error loading portfolio for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load portfolio: {e}")


@router.get("/allocation")
async def get_allocation(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return {"categories": portfolio_service.get_allocation(db, user_id)}
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get portfolio allocation: {e}")


@router.get("/export")
async def export_portfolio(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Holdings as a CSV download."""
    try:
        content = portfolio_service.export_csv(db, user_id)
    except Exception as e:
        logger.error(f"Error exporting portfolio for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to export portfolio: {e}")
    filename = f"portfolio_export_{date.today().isoformat()}.csv"
    return Response(content=content, media_type="text/csv",
                    headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@router.post("/import")
async def import_portfolio(request: Request, user_id: int = Depends(get_current_user_id),
                           db: Session = Depends(get_db)):
    """Add holdings from a CSV request body with a header row."""
    try:
        body = await request.body()
        result = portfolio_service.import_csv(db, user_id, body.decode("utf-8-sig"))
        db.commit()
        return result
    except UnicodeDecodeError:
        raise HTTPException(status_code=422, detail="CSV must be UTF-8 encoded")
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error importing portfolio for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to import portfolio: {e}")


@router.post("/positions", status_code=201)
async def add_position(request: PositionRequest, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        position = portfolio_service.add_position(
            db, user_id, request.symbol, request.quantity, request.average_price,
            name=request.name, category=request.category, notes=request.notes
        )
        db.commit()
        return {"success": True, "position": position.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to add position: {e}")


@router.put("/positions/{position_id}")
async def update_position(position_id: str, request: PositionUpdateRequest,
                          user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Update a holding; a quantity of zero removes it."""
    try:
        position = portfolio_service.update_position(db, user_id, position_id,
                                                     **request.model_dump(exclude_none=True))
        db.commit()
        if position is None:
            return {"success": True, "position": None, "message": "Position removed successfully."}
        return {"success": True, "position": position.to_dict(), "message": "Position updated successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update position: {e}")


@router.delete("/positions/{position_id}")
async def remove_position(position_id: str, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        portfolio_service.remove_position(db, user_id, position_id)
        db.commit()
        return {"success": True, "message": "Position removed successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to remove position: {e}")
