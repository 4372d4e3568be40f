"""
Shared router dependencies.
"""
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.exceptions import PlatformError
from app.models.user import User


def get_current_user_id(x_user_id: int = Header(..., alias="X-User-Id"), db: Session = Depends(get_db)) -> int:
    """The calling user, identified by the X-User-Id header."""
    if x_user_id <= 0:
        raise HTTPException(status_code=401, detail="Invalid user id")
    if db.get(User, x_user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    return x_user_id


def http_error(error: PlatformError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)
