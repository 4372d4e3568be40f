"""
Background job runner for the platform.

Runs price-alert checks, position monitoring (stop loss, take profit and
margin levels) and the daily performance milestone sweep on the
``schedule`` library, driven from an asyncio loop.
"""
import asyncio
import logging
from datetime import datetime
from typing import Dict, Any, Optional

import schedule

from app.core.config import settings
from app.core.database import get_db_session
from app.services.notification_service import notification_service
from app.services.trading_service import trading_service

logger = logging.getLogger(__name__)


class PlatformScheduler:
    """Schedules and runs the periodic platform jobs."""

    def __init__(self):
        self.is_running = False
        self.error_count = 0
        self.max_errors_before_stop = 10
        self.started_at: Optional[datetime] = None
        self.last_runs: Dict[str, str] = {}
        self.scheduler = schedule.Scheduler()

    async def start(self):
        """Register the jobs and start the loop as a background task."""
        if self.is_running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting platform scheduler...")
        self._schedule_tasks()
        self.is_running = True
        self.started_at = datetime.now()
        asyncio.create_task(self._main_loop())
        logger.info("Platform scheduler started")

    async def stop(self):
        logger.info("Stopping platform scheduler...")
        self.is_running = False
        self.scheduler.clear()
        logger.info("Platform scheduler stopped")

    def _schedule_tasks(self):
        self.scheduler.clear()
        self.scheduler.every(settings.price_alert_check_minutes).minutes.do(self.run_price_alerts)
        self.scheduler.every(settings.position_monitor_minutes).minutes.do(self.run_position_monitor)
        self.scheduler.every().day.at(settings.milestone_check_time).do(self.run_milestone_check)
        logger.info(f"Scheduled {len(self.scheduler.jobs)} platform jobs")

    async def _main_loop(self):
        while self.is_running:
            try:
                self.scheduler.run_pending()
                self.error_count = 0
                await asyncio.sleep(1)
            except Exception as e:
                logger.error(f"Error in scheduler loop: {e}")
                self.error_count += 1

                if self.error_count >= self.max_errors_before_stop:
                    logger.critical(f"Too many errors ({self.error_count}). Stopping scheduler.")
                    await self.stop()
                    break

                await asyncio.sleep(30)

    # Jobs

    def run_price_alerts(self) -> int:
        with get_db_session() as db:
            triggered = notification_service.check_price_alerts(db)
        self.last_runs["price_alerts"] = datetime.now().isoformat()
        if triggered:
            logger.info(f"Triggered {triggered} price alerts")
        return triggered

    def run_position_monitor(self) -> Dict[str, Any]:
        with get_db_session() as db:
            result = trading_service.monitor_open_positions(db)
        self.last_runs["position_monitor"] = datetime.now().isoformat()
        return result

    def run_milestone_check(self) -> int:
        with get_db_session() as db:
            checked = notification_service.check_all_milestones(db)
        self.last_runs["milestones"] = datetime.now().isoformat()
        logger.info(f"Milestone check covered {checked} users")
        return checked

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "jobs": len(self.scheduler.jobs),
            "error_count": self.error_count,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_runs": dict(self.last_runs),
        }


# Global scheduler instance
platform_scheduler = PlatformScheduler()
