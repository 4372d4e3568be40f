"""
Platform services package.

Contains the business logic services behind the API routers.
"""

# Import all services
from app.services.market_data import market_data_service
from app.services.wallet_service import wallet_service
from app.services.funding_service import funding_service
from app.services.notification_service import notification_service
from app.services.trading_service import trading_service
from app.services.trading_stats import trading_stats_service, performance_calculation_service
from app.services.risk_manager import risk_manager
from app.services.copy_trading import copy_trading_service
from app.services.journal_service import journal_service
from app.services.watchlist_service import watchlist_service, market_reference_service

# Export services
__all__ = [
    "market_data_service",
    "wallet_service",
    "funding_service",
    "notification_service",
    "trading_service",
    "trading_stats_service",
    "performance_calculation_service",
    "risk_manager",
    "copy_trading_service",
    "journal_service",
    "watchlist_service",
    "market_reference_service",
]
