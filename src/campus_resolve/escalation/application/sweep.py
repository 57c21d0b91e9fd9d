"""
Auto-Escalation Sweep
=====================

Walks every non-final ticket and advances those that need attention: the
active deadline has lapsed, the TAT was extended too many times, or the
ticket keeps being reopened. Each escalation queues a notification on the
rule's channel. Each ticket is committed on its own so one failure does not
undo the others.
"""

from datetime import datetime
from typing import Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.config import NotificationKind
from campus_resolve.core import utcnow
from campus_resolve.escalation.application.services import EscalationService
from campus_resolve.escalation.domain import EscalationLadder
from campus_resolve.shared.infrastructure.logging import get_logger, log_latency
from campus_resolve.tickets.application.services import (
    ITicketNotifier,
    ITicketRepository,
    iter_active_tickets,
)
from campus_resolve.tickets.domain import Ticket

logger = get_logger(__name__)

TAT_EXTENSION_TRIGGER = "tat_extension_limit"
REOPEN_TRIGGER = "repeated_reopening"


def escalation_reason(ticket_acknowledged: bool, level: int) -> str:
    if level == 0 and not ticket_acknowledged:
        return "Acknowledgement deadline passed"
    return "Resolution deadline passed"


def pending_trigger(
    ticket: Ticket,
    extension_limit: int = 3,
    reopen_limit: int = 3,
) -> Optional[Tuple[str, str]]:
    """
    Count-based trigger that has not escalated the ticket yet.

    Returns:
        (trigger name, reason), or None
    """
    fired = ticket.escalation_triggers
    if ticket.tat_extended_count >= extension_limit and TAT_EXTENSION_TRIGGER not in fired:
        return TAT_EXTENSION_TRIGGER, f"TAT extension limit ({ticket.tat_extended_count} extensions)"
    if ticket.reopen_count >= reopen_limit and REOPEN_TRIGGER not in fired:
        return REOPEN_TRIGGER, f"Repeated reopening ({ticket.reopen_count} times)"
    return None


class AutoEscalationService:
    """Advances tickets that need attention one ladder level per run."""

    def __init__(
        self,
        tickets: ITicketRepository,
        escalation: EscalationService,
        notifier: ITicketNotifier,
        session: AsyncSession,
        batch_size: int = 200,
        extension_limit: int = 3,
        reopen_limit: int = 3,
    ):
        self._tickets = tickets
        self._escalation = escalation
        self._notifier = notifier
        self._session = session
        self._batch_size = batch_size
        self._extension_limit = extension_limit
        self._reopen_limit = reopen_limit

    async def run(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Run one sweep.

        Returns:
            Counts of escalated tickets, tickets due at the top of their
            ladder, and tickets that failed
        """
        now = now or utcnow()
        ladders: Dict[Tuple[Optional[int], Optional[int]], EscalationLadder] = {}
        summary = {"escalated": 0, "capped": 0, "errors": 0}

        with log_latency(logger, "auto_escalation_sweep"):
            async for context in iter_active_tickets(self._tickets, self._batch_size):
                ticket = context.ticket
                try:
                    key = (context.domain_id, ticket.scope_id)
                    if key not in ladders:
                        ladders[key] = await self._escalation.ladder_for(*key)
                    ladder = ladders[key]

                    trigger = None
                    if ladder.has_lapsed(ticket, now):
                        reason = escalation_reason(ticket.is_acknowledged, ticket.escalation_level)
                    else:
                        pending = pending_trigger(ticket, self._extension_limit, self._reopen_limit)
                        if pending is None:
                            continue
                        trigger, reason = pending

                    event = ladder.advance(ticket, now, reason=reason)
                    if event is None:
                        summary["capped"] += 1
                        continue
                    if trigger is not None:
                        ticket.record_escalation_trigger(trigger)

                    await self._tickets.save(ticket)
                    await self._escalation.record(event)
                    await self._session.commit()
                except Exception as e:
                    await self._session.rollback()
                    summary["errors"] += 1
                    logger.error(
                        "Auto-escalation failed for ticket",
                        extra={"ticket_id": ticket.id, "error": str(e)}
                    )
                    continue

                summary["escalated"] += 1
                logger.info(
                    "Ticket auto-escalated",
                    extra={
                        "ticket_id": ticket.id,
                        "from_level": event.from_level,
                        "to_level": event.to_level,
                        "reason": event.reason,
                        "assigned_to": event.assignee,
                        "channel": event.channel.value if event.channel else None
                    }
                )
                try:
                    self._notifier.submit(
                        NotificationKind.ESCALATED,
                        context,
                        {
                            "from_level": event.from_level,
                            "to_level": event.to_level,
                            "reason": event.reason,
                            "due_at": event.due_at.isoformat() if event.due_at else None
                        },
                        event.channel,
                    )
                except Exception as e:
                    logger.error(
                        "Failed to queue escalation notification",
                        extra={"ticket_id": ticket.id, "error": str(e)}
                    )

        logger.info("Auto-escalation sweep complete", extra=summary)
        return summary
