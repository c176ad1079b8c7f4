"""Periodic purge of expired durable session records.

The document store's TTL index removes expired records eventually but not
promptly, so this job sweeps them on a fixed interval as well. It runs on
the application's shared ``AsyncIOScheduler``: once right away, then every
``interval_seconds``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.errors import ServiceUnavailableAppError
from app.services.session_manager import SessionManager

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "session_cleanup"


class SessionCleanupScheduler:
    def __init__(self, session_manager: SessionManager, *, interval_seconds: float = 3600) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._session_manager = session_manager
        self.interval_seconds = interval_seconds

    async def _clean(self) -> int:
        deleted = await self._session_manager.cleanup_expired()
        if deleted:
            logger.info("session_cleanup.completed", extra={"deleted": deleted})
        else:
            logger.debug("session_cleanup.nothing_expired")
        return deleted

    async def run_scheduled(self) -> None:
        """Job body. A store outage is logged and the next run retries."""
        try:
            await self._clean()
        except ServiceUnavailableAppError:
            logger.error("session_cleanup.failed", exc_info=True)

    def start(self, scheduler: AsyncIOScheduler) -> None:
        """Register the sweep on ``scheduler``, first run immediately."""
        scheduler.add_job(
            self.run_scheduled,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=CLEANUP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        logger.info("session_cleanup.started", extra={"interval_s": self.interval_seconds})

    def stop(self, scheduler: AsyncIOScheduler) -> None:
        if scheduler.get_job(CLEANUP_JOB_ID) is None:
            return
        scheduler.remove_job(CLEANUP_JOB_ID)
        logger.info("session_cleanup.stopped")

    async def trigger_cleanup(self) -> int:
        """Run a sweep immediately (admin/test hook)."""
        logger.info("session_cleanup.manual_trigger")
        return await self._clean()
