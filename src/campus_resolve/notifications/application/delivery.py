"""
Notification Delivery
=====================

Turns a queued notification into channel deliveries. Each job runs in
its own database session, separate from the request that produced it.
"""

from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.config import NotificationKind, NotifyChannel
from campus_resolve.core import utcnow
from campus_resolve.notifications.application.messages import build_message
from campus_resolve.notifications.application.services import (
    IRecipientDirectory,
    NotificationConfigResolver,
    NotificationDispatcher,
)
from campus_resolve.notifications.domain import DispatchResult, NotificationConfig
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.application.services import ITicketRepository
from campus_resolve.tickets.domain import TicketContext

logger = get_logger(__name__)


@dataclass(frozen=True)
class NotificationJob:
    """A queued notification. Delivery reloads the ticket by id."""

    kind: NotificationKind
    ticket_id: int
    details: Dict[str, Any] = field(default_factory=dict)
    channel: Optional[NotifyChannel] = None
    submitted_at: datetime = field(default_factory=utcnow)


class TicketNotificationService:
    """Resolve, address and dispatch one notification about a ticket."""

    def __init__(
        self,
        resolver: NotificationConfigResolver,
        directory: IRecipientDirectory,
        dispatcher: NotificationDispatcher,
    ):
        self._resolver = resolver
        self._directory = directory
        self._dispatcher = dispatcher

    async def notify(
        self,
        kind: NotificationKind,
        context: TicketContext,
        details: Optional[Dict[str, Any]] = None,
        channel: Optional[NotifyChannel] = None,
        config: Optional[NotificationConfig] = None,
    ) -> DispatchResult:
        ticket = context.ticket
        config = config or await self._resolver.resolve_for_ticket(context, channel)
        assignee = await self._directory.get_recipient(ticket.assigned_to) if ticket.assigned_to else None
        creator = await self._directory.get_recipient(ticket.created_by)
        message = build_message(kind, context, details, assignee=assignee, creator=creator)
        return await self._dispatcher.notify(config, message, context)


@dataclass
class DeliveryUnit:
    """Per-job collaborators bound to one session."""

    session: AsyncSession
    tickets: ITicketRepository
    notifications: TicketNotificationService


DeliveryUnitFactory = Callable[[], AbstractAsyncContextManager]


class NotificationDelivery:
    """
    Outbox job handler.

    The ticket is reloaded so the message reflects committed state. The
    Slack ts of a creation message is stored on the ticket so later
    notifications reply in its thread.
    """

    def __init__(self, unit_factory: DeliveryUnitFactory):
        self._unit_factory = unit_factory

    async def __call__(self, job: NotificationJob) -> Optional[DispatchResult]:
        return await self.deliver(job)

    async def deliver(self, job: NotificationJob) -> Optional[DispatchResult]:
        async with self._unit_factory() as unit:
            context = await unit.tickets.get_context(job.ticket_id)
            if context is None:
                logger.warning(
                    "Ticket vanished before notification delivery",
                    extra={"ticket_id": job.ticket_id, "kind": job.kind.value}
                )
                return None

            result = await unit.notifications.notify(job.kind, context, job.details, job.channel)

            if job.kind == NotificationKind.TICKET_CREATED and result.slack_ts:
                await self._link_thread(unit, context, result)
            return result

    async def _link_thread(self, unit: DeliveryUnit, context: TicketContext, result: DispatchResult) -> None:
        ticket = await unit.tickets.get(context.ticket.id)
        channel = result.slack_channel
        if ticket is None or not channel:
            return
        try:
            ticket.link_slack_thread(channel, result.slack_ts)
            await unit.tickets.save(ticket)
            await unit.session.commit()
        except Exception as e:
            await unit.session.rollback()
            logger.error(
                "Failed to store Slack thread on ticket",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
