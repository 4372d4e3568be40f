"""
Database models package.

Imports all models for SQLAlchemy table creation.
"""

# Import all models so they're registered with SQLAlchemy
from app.models.user import User, Follow, AccountType
from app.models.wallet import Wallet, WalletTransaction, CurrencyType, TransactionType, TransactionStatus
from app.models.trading_wallet import TradingWallet, TradingWalletType, MarginStatus
from app.models.funding import (
    ConnectedAccount, ConnectedAccountStatus, FundingTransaction, FundingType, FundingStatus
)
from app.models.trading import (
    TradingOrder, TradingPosition, OrderSide, OrderType, OrderStatus, PositionStatus
)
from app.models.trade import Trade, TradeSide
from app.models.copy_trading import (
    CopyTradingRelationship, CopyTradingSettings, CopyStatus, ApprovalStatus, PrivacyLevel
)
from app.models.journal import JournalEntry, JournalDirection, JournalOutcome
from app.models.watchlist import Watchlist
from app.models.notification import PriceAlert, AlertCondition, NotificationPreference, Notification
from app.models.market import MarketNews, EconomicCalendarEvent
from app.models.portfolio import PortfolioPosition
from app.models.strategy import TradingStrategy

# Export all models
__all__ = [
    "User",
    "Follow",
    "AccountType",
    "Wallet",
    "WalletTransaction",
    "CurrencyType",
    "TransactionType",
    "TransactionStatus",
    "TradingWallet",
    "TradingWalletType",
    "MarginStatus",
    "ConnectedAccount",
    "ConnectedAccountStatus",
    "FundingTransaction",
    "FundingType",
    "FundingStatus",
    "TradingOrder",
    "TradingPosition",
    "OrderSide",
    "OrderType",
    "OrderStatus",
    "PositionStatus",
    "Trade",
    "TradeSide",
    "CopyTradingRelationship",
    "CopyTradingSettings",
    "CopyStatus",
    "ApprovalStatus",
    "PrivacyLevel",
    "JournalEntry",
    "JournalDirection",
    "JournalOutcome",
    "Watchlist",
    "PriceAlert",
    "AlertCondition",
    "NotificationPreference",
    "Notification",
    "MarketNews",
    "EconomicCalendarEvent",
    "PortfolioPosition",
    "TradingStrategy",
]
