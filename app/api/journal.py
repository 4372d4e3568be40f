"""
Trading journal API endpoints.
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.journal_service import journal_service
from app.services.wallet_service import wallet_service

logger = logging.getLogger(__name__)
router = APIRouter()


class JournalEntryRequest(BaseModel):
    pair: Optional[str] = None
    direction: Optional[str] = None  # 'long' or 'short'
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    risk_reward_ratio: Optional[float] = None
    profit_loss: Optional[float] = None
    outcome: Optional[str] = None
    entry_at: Optional[datetime] = None
    exit_at: Optional[datetime] = None
    setup_reason: Optional[str] = None
    execution_notes: Optional[str] = None
    post_trade_analysis: Optional[str] = None
    tags: Optional[List[str]] = None


@router.get("")
async def list_entries(
    pair: Optional[str] = Query(None),
    outcome: Optional[str] = Query(None, description="win, loss or breakeven"),
    tag: Optional[str] = Query(None),
    favorites_only: bool = Query(False),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        entries = journal_service.list_entries(db, user_id, pair, outcome, tag, favorites_only,
                                               date_from, date_to, search, limit, offset)
        return {"entries": [e.to_dict() for e in entries], "count": len(entries)}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error listing journal entries for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list journal entries: {e}")


@router.post("", status_code=201)
async def create_entry(request: JournalEntryRequest, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        wallet_service.get_user(db, user_id)
        entry = journal_service.create_entry(db, user_id, request.model_dump(exclude_unset=True))
        db.commit()
        return {"success": True, "entry": entry.to_dict(), "message": "Journal entry created successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating journal entry for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create journal entry: {e}")


@router.get("/statistics")
async def get_statistics(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        stats = journal_service.get_statistics(db, user_id)
        stats["timestamp"] = datetime.now().isoformat()
        return stats
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get journal statistics: {e}")


@router.get("/{entry_id}")
async def get_entry(entry_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return journal_service.get_entry(db, user_id, entry_id).to_dict()
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get journal entry: {e}")


@router.put("/{entry_id}")
async def update_entry(entry_id: int, request: JournalEntryRequest, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        entry = journal_service.update_entry(db, user_id, entry_id, request.model_dump(exclude_unset=True))
        db.commit()
        return {"success": True, "entry": entry.to_dict(), "message": "Journal entry updated successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update journal entry: {e}")


@router.delete("/{entry_id}")
async def delete_entry(entry_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        journal_service.delete_entry(db, user_id, entry_id)
        db.commit()
        return {"success": True, "message": "Journal entry deleted successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete journal entry: {e}")


@router.post("/{entry_id}/favorite")
async def toggle_favorite(entry_id: int, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        entry = journal_service.toggle_favorite(db, user_id, entry_id)
        db.commit()
        return {"success": True, "is_favorite": entry.is_favorite}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to toggle favorite: {e}")
