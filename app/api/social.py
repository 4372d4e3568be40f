"""
Social trading API endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, http_error
from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.services.social_service import social_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def get_social_overview(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Follow stats, recent followers and popular traders."""
    try:
        return social_service.overview(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error loading social overview for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load social overview: {e}")


@router.get("/followers")
async def get_followers(limit: int = Query(10, ge=1, le=100), offset: int = Query(0, ge=0),
                        user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return social_service.list_followers(db, user_id, limit, offset)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get followers: {e}")


@router.get("/following")
async def get_following(limit: int = Query(10, ge=1, le=100), offset: int = Query(0, ge=0),
                        user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return social_service.list_following(db, user_id, limit, offset)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get followed traders: {e}")


@router.get("/popular")
async def get_popular_traders(limit: int = Query(10, ge=1, le=50),
                              user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return {"traders": social_service.popular_traders(db, limit, viewer_id=user_id)}
    except Exception as e:
        logger.error(f"Error fetching popular traders: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get popular traders: {e}")


@router.get("/search")
async def search_traders(query: str = Query(..., max_length=100), limit: int = Query(10, ge=1, le=50),
                         user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Search traders by name or e-mail."""
    try:
        return {"traders": social_service.search(db, query, limit, viewer_id=user_id)}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to search traders: {e}")


@router.get("/traders/{trader_id}")
async def get_trader_profile(trader_id: int, user_id: int = Depends(get_current_user_id),
                             db: Session = Depends(get_db)):
    try:
        return social_service.trader_profile(db, user_id, trader_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get trader profile: {e}")


@router.post("/traders/{trader_id}/follow", status_code=201)
async def follow_trader(trader_id: int, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        social_service.follow(db, user_id, trader_id)
        db.commit()
        return {"success": True, "message": "You are now following this trader."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error following trader {trader_id} for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to follow trader: {e}")


@router.delete("/traders/{trader_id}/follow")
async def unfollow_trader(trader_id: int, user_id: int = Depends(get_current_user_id),
                          db: Session = Depends(get_db)):
    try:
        removed = social_service.unfollow(db, user_id, trader_id)
        db.commit()
        message = "You have unfollowed this trader." if removed else "You were not following this trader."
        return {"success": True, "message": message}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to unfollow trader: {e}")
