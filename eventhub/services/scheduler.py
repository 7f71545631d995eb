"""
Expiry Sweeper
Periodically closes events whose end time has passed
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from eventhub.config import settings
from eventhub.stores import EventStore, get_event_store

logger = logging.getLogger(__name__)

JOB_ID = "event_expiry_sweep"


class ExpirySweeper:
    """Owns an AsyncIOScheduler running the sweep on an interval"""

    def __init__(self, store: Optional[EventStore] = None, interval_minutes: Optional[int] = None):
        self._store = store
        self.interval_minutes = interval_minutes or settings.EXPIRY_SWEEP_INTERVAL_MINUTES
        self.scheduler: Optional[AsyncIOScheduler] = None

    @property
    def store(self) -> EventStore:
        return self._store or get_event_store()

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    async def run_once(self, now: Optional[datetime] = None) -> int:
        """Deactivate every active event that ended before `now`"""
        now = now or datetime.now(timezone.utc)
        swept = await self.store.sweep_expired(now)
        if swept:
            logger.info("Expiry sweep closed %d event(s)", swept)
        else:
            logger.debug("Expiry sweep found nothing to close")
        return swept

    def start(self) -> None:
        """Schedule the sweep; must be called from a running event loop"""
        if self.running:
            return

        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Close events past their end time",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Expiry sweeper started (every %d min)", self.interval_minutes)

    def shutdown(self) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        self.scheduler = None
        logger.info("Expiry sweeper stopped")


# Create singleton instance
expiry_sweeper = ExpirySweeper()
