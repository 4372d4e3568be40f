"""
Wallet API endpoints.
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
from app.services.wallet_service import wallet_service

logger = logging.getLogger(__name__)
router = APIRouter()


class WalletCreateRequest(BaseModel):
    currency: str = Field(..., min_length=3, max_length=10)
    currency_type: str = "FIAT"
    is_default: bool = False
    initial_balance: float = Field(0, ge=0)


class AmountRequest(BaseModel):
    amount: float = Field(..., gt=0)
    fee: float = Field(0, ge=0)
    description: Optional[str] = None


class TransferRequest(BaseModel):
    from_wallet_id: str
    to_wallet_id: str
    amount: float = Field(..., gt=0)
    fee: float = Field(0, ge=0)
    description: Optional[str] = None


class LockRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: Optional[str] = None


@router.get("")
async def list_wallets(user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Wallets with totals across currencies."""
    try:
        return wallet_service.get_wallet_summary(db, user_id)
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error listing wallets: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list wallets: {e}")


@router.post("", status_code=201)
async def create_wallet(request: WalletCreateRequest, user_id: int = Depends(get_current_user_id),
                        db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.create_wallet(db, user_id, request.currency, request.currency_type,
                                              request.is_default, request.initial_balance)
        db.commit()
        return {"success": True, "wallet": wallet.to_dict(), "message": "Wallet created successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating wallet: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create wallet: {e}")


@router.get("/transactions")
async def get_transactions(
    wallet_id: Optional[str] = Query(None),
    transaction_type: Optional[str] = Query(None, description="DEPOSIT, WITHDRAWAL, TRANSFER_IN, ..."),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        transactions = wallet_service.get_transactions(db, user_id, wallet_id, transaction_type,
                                                       date_from, date_to, limit, offset)
        return {
            "transactions": [t.to_dict() for t in transactions],
            "count": len(transactions),
            "timestamp": datetime.now().isoformat()
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error fetching transactions: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch transactions: {e}")


@router.post("/transfer")
async def transfer(request: TransferRequest, user_id: int = Depends(get_current_user_id),
                   db: Session = Depends(get_db)):
    """Move funds between two of the caller's wallets."""
    try:
        source = wallet_service.get_wallet(db, user_id, request.from_wallet_id)
        target = wallet_service.get_wallet(db, user_id, request.to_wallet_id)
        result = wallet_service.transfer(db, source, target, request.amount, request.fee,
                                         request.description or "Transfer")
        db.commit()
        return {
            "success": True,
            "reference_id": result["reference_id"],
            "outgoing_transaction": result["outgoing_transaction"].to_dict(),
            "incoming_transaction": result["incoming_transaction"].to_dict(),
            "message": result["message"],
        }
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error transferring funds: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to transfer funds: {e}")


@router.get("/{wallet_id}")
async def get_wallet(wallet_id: str, user_id: int = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.get_wallet(db, user_id, wallet_id)
        recent = wallet_service.get_transactions(db, user_id, wallet_id=wallet.id, limit=10)
        return {"wallet": wallet.to_dict(), "recent_transactions": [t.to_dict() for t in recent]}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error fetching wallet {wallet_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch wallet: {e}")


@router.post("/{wallet_id}/default")
async def set_default_wallet(wallet_id: str, user_id: int = Depends(get_current_user_id),
                             db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.set_default(db, user_id, wallet_id)
        db.commit()
        return {"success": True, "wallet": wallet.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error setting default wallet: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to set default wallet: {e}")


@router.delete("/{wallet_id}")
async def delete_wallet(wallet_id: str, user_id: int = Depends(get_current_user_id),
                        db: Session = Depends(get_db)):
    try:
        wallet_service.delete_wallet(db, user_id, wallet_id)
        db.commit()
        return {"success": True, "message": "Wallet deleted successfully."}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error deleting wallet: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to delete wallet: {e}")


@router.post("/{wallet_id}/deposit")
async def deposit(wallet_id: str, request: AmountRequest, user_id: int = Depends(get_current_user_id),
                  db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.get_wallet(db, user_id, wallet_id)
        transaction = wallet_service.deposit(db, wallet, request.amount, request.fee,
                                             request.description or "Deposit")
        db.commit()
        return {"success": True, "wallet": wallet.to_dict(), "transaction": transaction.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error depositing into wallet {wallet_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to deposit: {e}")


@router.post("/{wallet_id}/withdraw")
async def withdraw(wallet_id: str, request: AmountRequest, user_id: int = Depends(get_current_user_id),
                   db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.get_wallet(db, user_id, wallet_id)
        transaction = wallet_service.withdraw(db, wallet, request.amount, request.fee,
                                              request.description or "Withdrawal")
        db.commit()
        return {"success": True, "wallet": wallet.to_dict(), "transaction": transaction.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error withdrawing from wallet {wallet_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to withdraw: {e}")


@router.post("/{wallet_id}/lock")
async def lock_funds(wallet_id: str, request: LockRequest, user_id: int = Depends(get_current_user_id),
                     db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.get_wallet(db, user_id, wallet_id)
        wallet_service.lock_funds(db, wallet, request.amount, request.reason or "Trading margin")
        db.commit()
        return {"success": True, "wallet": wallet.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error locking funds in wallet {wallet_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to lock funds: {e}")


@router.post("/{wallet_id}/unlock")
async def unlock_funds(wallet_id: str, request: LockRequest, user_id: int = Depends(get_current_user_id),
                       db: Session = Depends(get_db)):
    try:
        wallet = wallet_service.get_wallet(db, user_id, wallet_id)
        wallet_service.unlock_funds(db, wallet, request.amount, request.reason or "Trading margin released")
        db.commit()
        return {"success": True, "wallet": wallet.to_dict()}
    except PlatformError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error unlocking funds in wallet {wallet_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to unlock funds: {e}")
