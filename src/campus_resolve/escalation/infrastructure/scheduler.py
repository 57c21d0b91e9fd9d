"""
Escalation Scheduler
====================

In-process APScheduler job that runs the auto-escalation sweep on an
interval. Deployments without a long-lived process call the cron
endpoint instead.
"""

from typing import Any, Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class EscalationScheduler:
    """
    Wrapper for APScheduler running the escalation sweep.

    ``max_instances=1`` keeps sweeps from overlapping when one runs long.
    """

    JOB_ID = "auto_escalation"

    def __init__(self, interval_seconds: int = 300):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        if self._running:
            logger.warning("Escalation scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="Auto-escalation sweep",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("Escalation scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def stop(self) -> None:
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Escalation scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
