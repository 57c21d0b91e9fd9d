"""
Notification Outbox
===================

In-process queue between ticket mutations and notification delivery.

Mutations submit a job and return immediately; a single worker task
delivers jobs in submission order. When the queue is full new jobs are
dropped and counted, the mutation that produced them is unaffected.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

from campus_resolve.config import NotificationKind, NotifyChannel
from campus_resolve.notifications.application.delivery import NotificationJob
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.application.services import ITicketNotifier
from campus_resolve.tickets.domain import TicketContext

logger = get_logger(__name__)


JobHandler = Callable[[NotificationJob], Awaitable[Any]]


class NotificationOutbox:
    """Bounded queue with one background delivery worker."""

    def __init__(self, handler: JobHandler, max_size: int = 1000):
        self._handler = handler
        self._max_size = max_size
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.submitted = 0
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def stats(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "pending": self.pending,
            "submitted": self.submitted,
            "delivered": self.delivered,
            "failed": self.failed,
            "dropped": self.dropped,
        }

    def start(self) -> None:
        """Start the worker. Must be called with a running event loop."""
        if self.is_running:
            return
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._max_size)
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="notification-outbox")
        logger.info("Notification outbox started", extra={"max_size": self._max_size})

    def submit(self, job: NotificationJob) -> bool:
        """
        Queue a job without waiting.

        Returns:
            False when the job was dropped because the queue is full
        """
        self.start()
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.error(
                "Notification outbox full, dropping notification",
                extra={"ticket_id": job.ticket_id, "kind": job.kind.value, "dropped": self.dropped}
            )
            return False
        self.submitted += 1
        return True

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._handler(job)
                self.delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failed += 1
                logger.error(
                    "Notification delivery failed",
                    extra={"ticket_id": job.ticket_id, "kind": job.kind.value, "error": str(e)}
                )
            finally:
                self._queue.task_done()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued job has been handled.

        Returns:
            False when the timeout expired first
        """
        if self._queue is None:
            return True
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain for up to ``timeout`` seconds, then stop the worker."""
        if self._worker is None:
            return
        if not await self.drain(timeout):
            logger.warning("Notification outbox stopped with pending jobs", extra={"pending": self.pending})
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Notification outbox stopped", extra=self.stats())


class OutboxTicketNotifier(ITicketNotifier):
    """Hands ticket notifications to the outbox."""

    def __init__(self, outbox: NotificationOutbox):
        self._outbox = outbox

    def submit(
        self,
        kind: NotificationKind,
        context: TicketContext,
        details: Optional[Dict[str, Any]] = None,
        channel: Optional[NotifyChannel] = None,
    ) -> bool:
        job = NotificationJob(
            kind=kind,
            ticket_id=context.ticket.id,
            details=dict(details or {}),
            channel=channel,
        )
        return self._outbox.submit(job)
