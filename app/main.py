"""
Main FastAPI application for the FX trading platform.
"""
import logging
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime

from app.core.config import settings
from app.core.database import init_db, check_db_connection
from app.core.cache import redis_cache
from app.api import (
    wallets, funding, trading, risk_management, copy_trading, notifications,
    journal, watchlist, market, analytics, social, portfolio, strategies
)
from app.services.scheduler import platform_scheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    try:
        init_db()

        if not redis_cache.health_check():
            logger.warning("Redis unavailable, using in-memory cache")

        if settings.scheduler_enabled:
            await platform_scheduler.start()

        logger.info("All services initialized successfully")

    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    if platform_scheduler.is_running:
        await platform_scheduler.stop()


# Create FastAPI app with lifespan
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Retail FX trading platform: wallets, funding, trading, risk management and copy trading",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    try:
        # Check database
        db_healthy = check_db_connection()

        # Check Redis
        redis_healthy = redis_cache.health_check()

        return {
            "status": "healthy" if db_healthy else "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "version": settings.app_version,
            "services": {
                "database": "up" if db_healthy else "down",
                "redis": "up" if redis_healthy and not redis_cache.is_using_fallback() else "fallback",
                "scheduler": platform_scheduler.get_status(),
            }
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=500, detail="Health check failed")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "status": "running",
        "docs_url": "/docs"
    }


# Include API routers
app.include_router(wallets.router, prefix="/api/v1/wallets", tags=["wallets"])
app.include_router(funding.router, prefix="/api/v1/funding", tags=["funding"])
app.include_router(trading.router, prefix="/api/v1/trading", tags=["trading"])
app.include_router(risk_management.router, prefix="/api/v1/risk-management", tags=["risk_management"])
app.include_router(risk_management.calculator_router, prefix="/api/risk-management", tags=["risk_management"])
app.include_router(copy_trading.router, prefix="/api/v1/copy-trading", tags=["copy_trading"])
app.include_router(notifications.router, prefix="/api/v1/notifications", tags=["notifications"])
app.include_router(journal.router, prefix="/api/v1/journal", tags=["journal"])
app.include_router(watchlist.router, prefix="/api/v1/watchlist", tags=["watchlist"])
app.include_router(market.router, prefix="/api/v1/market", tags=["market"])
app.include_router(analytics.router, prefix="/api/v1/analytics", tags=["analytics"])
app.include_router(social.router, prefix="/api/v1/social", tags=["social"])
app.include_router(portfolio.router, prefix="/api/v1/portfolio", tags=["portfolio"])
app.include_router(strategies.router, prefix="/api/v1/strategies", tags=["strategies"])


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
