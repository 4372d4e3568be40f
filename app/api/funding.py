"""
Funding API endpoints: connected bank accounts, deposits and withdrawals.
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
from app.services.funding_service import funding_service

logger = logging.getLogger(__name__)
router = APIRouter()


class LinkAccountRequest(BaseModel):
    institution_name: str = Field(..., max_length=255)
    account_name: str = Field(..., max_length=255)
    account_number_last4: str = Field(..., min_length=4, max_length=4)
    current_balance: float = Field(..., ge=0)
    available_balance: Optional[float] = Field(None, ge=0)
    institution_id: Optional[str] = None
    account_type: str = "depository"
    account_subtype: Optional[str] = None
    iso_currency_code: str = "USD"


class VerifyAccountRequest(BaseModel):
    verification_code: str


class DepositRequest(BaseModel):
    connected_account_id: str
    wallet_id: str
    amount: float = Field(..., ge=1)
    notes: Optional[str] = None


class WithdrawalRequest(BaseModel):
    wallet_id: str
    connected_account_id: str
    amount: float = Field(..., ge=1)
    notes: Optional[str] = None


@router.get("/connected-accounts")
async def list_connected_accounts(include_inactive: bool = Query(False),
                                  user_id: int = Depends(get_current_user_id),
                                  db: Session = Depends(get_db)):
    try:
        accounts = funding_service.list_accounts(db, user_id, include_inactive)
        return {"accounts": [a.to_dict() for a in accounts], "count": len(accounts)}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error listing connected accounts: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list connected accounts: {e}")


@router.post("/connected-accounts", status_code=201)
async def link_connected_account(request: LinkAccountRequest, user_id: int = Depends(get_current_user_id),
                                 db: Session = Depends(get_db)):
    try:
        account = funding_service.link_account(
            db, user_id, request.institution_name, request.account_name, request.account_number_last4,
            request.current_balance, request.available_balance, request.institution_id,
            request.account_type, request.account_subtype, request.iso_currency_code
        )
        db.commit()
        return {"success": True, "account": account.to_dict(), "message": "Account linked successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error linking connected account: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to link account: {e}")


@router.post("/connected-accounts/{account_id}/verify")
async def verify_connected_account(account_id: str, request: VerifyAccountRequest,
                                   user_id: int = Depends(get_current_user_id),
                                   db: Session = Depends(get_db)):
    try:
        account = funding_service.verify_account(db, user_id, account_id, request.verification_code)
        db.commit()
        return {"success": True, "account": account.to_dict(), "message": "Account verified successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error verifying connected account: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to verify account: {e}")


@router.delete("/connected-accounts/{account_id}")
async def unlink_connected_account(account_id: str, user_id: int = Depends(get_current_user_id),
                                   db: Session = Depends(get_db)):
    try:
        account = funding_service.unlink_account(db, user_id, account_id)
        db.commit()
        return {"success": True, "account": account.to_dict(), "message": "Account removed successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error unlinking connected account: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to remove account: {e}")


@router.post("/deposits", status_code=201)
async def initiate_deposit(request: DepositRequest, user_id: int = Depends(get_current_user_id),
                           db: Session = Depends(get_db)):
    try:
        result = funding_service.initiate_deposit(db, user_id, request.connected_account_id,
                                                  request.wallet_id, request.amount, request.notes)
        db.commit()
        return {"success": True, "transaction": result["transaction"].to_dict(), "message": result["message"]}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error initiating deposit: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to initiate deposit: {e}")


@router.post("/withdrawals", status_code=201)
async def initiate_withdrawal(request: WithdrawalRequest, user_id: int = Depends(get_current_user_id),
                              db: Session = Depends(get_db)):
    try:
        result = funding_service.initiate_withdrawal(db, user_id, request.wallet_id,
                                                     request.connected_account_id, request.amount,
                                                     request.notes)
        db.commit()
        return {"success": True, "transaction": result["transaction"].to_dict(), "message": result["message"]}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error initiating withdrawal: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to initiate withdrawal: {e}")


@router.get("/transactions")
async def get_funding_history(limit: int = Query(10, ge=1, le=100), offset: int = Query(0, ge=0),
                              user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        history = funding_service.get_transaction_history(db, user_id, limit, offset)
        history["timestamp"] = datetime.now().isoformat()
        return history
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error fetching funding history: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch funding history: {e}")


@router.get("/transactions/{transaction_id}")
async def get_funding_transaction(transaction_id: str, user_id: int = Depends(get_current_user_id),
                                  db: Session = Depends(get_db)):
    try:
        return funding_service.get_transaction(db, user_id, transaction_id).to_dict()
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error fetching funding transaction: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch transaction: {e}")


@router.post("/transactions/{transaction_id}/complete")
async def complete_funding_transaction(transaction_id: str, user_id: int = Depends(get_current_user_id),
                                       db: Session = Depends(get_db)):
    """Settle a pending deposit or withdrawal."""
    try:
        transaction = funding_service.get_transaction(db, user_id, transaction_id)
        result = funding_service.complete_transaction(db, transaction)
        db.commit()
        return {"success": True, "transaction": transaction.to_dict(), "message": result["message"]}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error completing funding transaction: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to complete transaction: {e}")


@router.post("/transactions/{transaction_id}/cancel")
async def cancel_funding_transaction(transaction_id: str, user_id: int = Depends(get_current_user_id),
                                     db: Session = Depends(get_db)):
    try:
        transaction = funding_service.get_transaction(db, user_id, transaction_id)
        result = funding_service.cancel_transaction(db, transaction)
        db.commit()
        return {"success": True, "transaction": transaction.to_dict(), "message": result["message"]}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error cancelling funding transaction: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to cancel transaction: {e}")
