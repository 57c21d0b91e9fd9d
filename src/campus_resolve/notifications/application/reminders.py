"""
TAT Reminders
=============

Periodic nudges to assignees of tickets that are waiting too long.

A ticket gets a reminder when it is still unacknowledged some hours after
creation, or when it is acknowledged and its TAT deadline has passed.
Reminders never change ticket state.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from campus_resolve.config import NotificationKind
from campus_resolve.core import hours_between, utcnow
from campus_resolve.notifications.application.delivery import TicketNotificationService
from campus_resolve.notifications.application.services import NotificationConfigResolver
from campus_resolve.shared.infrastructure.logging import get_logger, log_latency
from campus_resolve.tickets.application.services import ITicketRepository, iter_active_tickets
from campus_resolve.tickets.domain import Ticket

logger = get_logger(__name__)


def evaluate_reminder(ticket: Ticket, now: datetime, threshold_hours: float = 2.0) -> Optional[str]:
    """
    Reason to remind the assignee about a ticket, or None.

    Args:
        ticket: Ticket to check
        now: Evaluation time
        threshold_hours: Hours after creation before an unacknowledged
            ticket is reminded

    Returns:
        Human-readable reason
    """
    if ticket.is_final or not ticket.assigned_to:
        return None

    if not ticket.is_acknowledged:
        age = hours_between(ticket.created_at, now)
        if age >= threshold_hours:
            return f"Ticket not acknowledged (created {math.floor(age)} hours ago)"
        return None

    if ticket.resolution_due_at is not None and ticket.resolution_due_at <= now:
        overdue = hours_between(ticket.resolution_due_at, now)
        return f"TAT overdue by {math.floor(overdue)} hours"
    return None


class ReminderSweepService:
    """Sends reminders for every eligible active ticket."""

    def __init__(
        self,
        tickets: ITicketRepository,
        resolver: NotificationConfigResolver,
        notifications: TicketNotificationService,
        threshold_hours: float = 2.0,
        batch_size: int = 200,
    ):
        self._tickets = tickets
        self._resolver = resolver
        self._notifications = notifications
        self._threshold_hours = threshold_hours
        self._batch_size = batch_size

    async def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one reminder sweep.

        Returns:
            Summary with ``remindersSent``, one ``reminders`` entry per
            reminded ticket and one ``errors`` entry per failed ticket
        """
        now = now or utcnow()
        reminders: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []

        settings = await self._resolver.settings()
        if not settings.tat_reminders_enabled:
            logger.info("TAT reminders disabled, skipping sweep")
            return {"success": True, "disabled": True, "remindersSent": 0, "reminders": [], "errors": []}

        with log_latency(logger, "reminder_sweep"):
            async for context in iter_active_tickets(self._tickets, self._batch_size, assigned_only=True):
                ticket = context.ticket
                reason = evaluate_reminder(ticket, now, self._threshold_hours)
                if reason is None:
                    continue
                try:
                    result = await self._notifications.notify(
                        NotificationKind.REMINDER, context, {"reason": reason}
                    )
                except Exception as e:
                    logger.error("Reminder failed", extra={"ticket_id": ticket.id, "error": str(e)})
                    errors.append({"ticketId": ticket.id, "error": str(e)})
                    continue

                if result.delivered:
                    reminders.append({"ticketId": ticket.id, "reason": reason, "channels": list(result.delivered)})
                for channel, error in result.failures.items():
                    errors.append({"ticketId": ticket.id, "channel": channel, "error": error})

        logger.info(
            "Reminder sweep complete",
            extra={"reminders_sent": len(reminders), "errors": len(errors)}
        )
        return {"success": True, "remindersSent": len(reminders), "reminders": reminders, "errors": errors}
