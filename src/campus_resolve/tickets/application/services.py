"""
Ticket Application Services
===========================

The mutation path the routing engine hangs off. Every action persists the
ticket, commits, and only then hands notifications to the notifier, which
queues them without waiting for delivery. A notification problem never
fails the mutation.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.assignment.application import SpocResolver
from campus_resolve.assignment.domain import AssignmentContext
from campus_resolve.config import (
    EscalationEventKind, NotificationKind, NotifyChannel, TicketStatus
)
from campus_resolve.core import (
    DomainException, ResourceNotFoundException, ValidationException, utcnow
)
from campus_resolve.escalation.application.services import EscalationService
from campus_resolve.escalation.domain import Deadline, EscalationEvent
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.domain import Ticket, TicketContext, calculate_tat_date

logger = get_logger(__name__)


# ========== Interfaces ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get(self, ticket_id: int) -> Optional[Ticket]:
        """Get ticket by id."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket and assign its id."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """Persist changes to an existing ticket."""

    @abstractmethod
    async def build_context(self, ticket: Ticket) -> TicketContext:
        """Resolve category, domain and scope names for a ticket."""

    @abstractmethod
    async def get_context(self, ticket_id: int) -> Optional[TicketContext]:
        """Ticket plus routing context."""

    @abstractmethod
    async def list_active(
        self,
        limit: int = 200,
        after: Optional[Tuple[datetime, int]] = None,
        assigned_only: bool = False,
    ) -> List[TicketContext]:
        """One page of non-final tickets ordered by (created_at, id), strictly after ``after``."""

    @abstractmethod
    async def find_scope_id(self, domain_id: Optional[int], location: Optional[str]) -> Optional[int]:
        """Scope named exactly like ``location``."""

    @abstractmethod
    async def category_exists(self, category_id: int, subcategory_id: Optional[int] = None) -> bool:
        """Active category, and the subcategory belongs to it when given."""


class ITicketNotifier(ABC):
    """Accepts notifications without waiting for delivery."""

    @abstractmethod
    def submit(
        self,
        kind: NotificationKind,
        context: TicketContext,
        details: Optional[Dict[str, Any]] = None,
        channel: Optional[NotifyChannel] = None,
    ) -> bool:
        """Queue a notification. Returns False when it was dropped."""


async def iter_active_tickets(
    tickets: ITicketRepository,
    batch_size: int = 200,
    assigned_only: bool = False,
) -> AsyncIterator[TicketContext]:
    """
    Every non-final ticket, oldest first.

    Pages are fetched by keyset on (created_at, id) so a sweep that commits
    between tickets still sees each ticket exactly once.
    """
    after: Optional[Tuple[datetime, int]] = None
    while True:
        page = await tickets.list_active(limit=batch_size, after=after, assigned_only=assigned_only)
        for context in page:
            yield context
        if len(page) < batch_size:
            return
        last = page[-1].ticket
        after = (last.created_at, last.id)


# ========== Application Services ==========

def assignment_context(context: TicketContext) -> AssignmentContext:
    """Input to the SPOC resolver for a ticket."""
    ticket = context.ticket
    return AssignmentContext(
        category=context.category_name or "",
        category_id=ticket.category_id,
        subcategory_id=ticket.subcategory_id,
        field_slugs=ticket.field_slugs,
        domain=context.domain_name,
        scope=context.routing_scope,
        category_default_assignee=context.category_default_assignee,
    )


class TicketService:
    """
    Ticket creation and staff actions.

    The session is committed by the service so that notifications are
    only queued for state that is durable.
    """

    def __init__(
        self,
        tickets: ITicketRepository,
        resolver: SpocResolver,
        escalation: EscalationService,
        notifier: ITicketNotifier,
        session: AsyncSession,
    ):
        self._tickets = tickets
        self._resolver = resolver
        self._escalation = escalation
        self._notifier = notifier
        self._session = session

    def _notify(
        self,
        kind: NotificationKind,
        context: TicketContext,
        details: Optional[Dict[str, Any]] = None,
        channel: Optional[NotifyChannel] = None,
    ) -> None:
        try:
            self._notifier.submit(kind, context, details, channel)
        except Exception as e:
            logger.error(
                "Failed to queue notification",
                extra={"ticket_id": context.ticket.id, "kind": kind.value, "error": str(e)}
            )

    async def _load(self, ticket_id: int) -> Ticket:
        ticket = await self._tickets.get(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    async def _persist(self, ticket: Ticket) -> TicketContext:
        await self._tickets.save(ticket)
        await self._session.commit()
        return await self._tickets.build_context(ticket)

    # ---------- queries ----------

    async def get(self, ticket_id: int) -> TicketContext:
        context = await self._tickets.get_context(ticket_id)
        if context is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return context

    async def details(self, ticket_id: int) -> Tuple[TicketContext, Deadline, List[EscalationEvent]]:
        """Ticket, its active escalation deadline and its escalation history."""
        context = await self.get(ticket_id)
        deadline = await self._escalation.next_deadline(context)
        events = await self._escalation.events_for(ticket_id)
        return context, deadline, events

    # ---------- commands ----------

    async def create(
        self,
        created_by: str,
        category_id: int,
        subcategory_id: Optional[int] = None,
        location: Optional[str] = None,
        description: Optional[str] = None,
        fields: Optional[Dict[str, Any]] = None,
        scope_id: Optional[int] = None,
    ) -> TicketContext:
        """
        Create a ticket, assign its SPOC and start the acknowledgement clock.

        Args:
            created_by: External id of the submitting principal
            category_id: Category the ticket is filed under
            subcategory_id: Optional subcategory of that category
            location: Free-text location; matched to a scope by exact name
            description: Ticket body
            fields: Submitted dynamic form values keyed by field slug
            scope_id: Explicit scope, overrides ``location`` matching

        Returns:
            The persisted ticket with its routing context
        """
        if not await self._tickets.category_exists(category_id, subcategory_id):
            raise ValidationException(
                "Unknown category or subcategory",
                {"category_id": category_id, "subcategory_id": subcategory_id}
            )

        now = utcnow()
        ticket = Ticket(
            id=None,
            created_by=created_by,
            status=TicketStatus.OPEN,
            created_at=now,
            updated_at=now,
            category_id=category_id,
            subcategory_id=subcategory_id,
            scope_id=scope_id,
            location=location,
            description=description,
            metadata={"fields": dict(fields or {})},
        )

        context = await self._tickets.build_context(ticket)
        if ticket.scope_id is None and location:
            ticket.scope_id = await self._tickets.find_scope_id(context.domain_id, location)
            if ticket.scope_id is not None:
                context = await self._tickets.build_context(ticket)

        spoc = await self._resolver.explain(assignment_context(context))
        ticket.assigned_to = spoc.principal_id
        if spoc.tier:
            ticket.metadata["assignment_tier"] = spoc.tier

        ladder = await self._escalation.ladder_for(context.domain_id, ticket.scope_id)
        ticket.acknowledgement_due_at = now + ladder.acknowledgement_window()

        await self._tickets.add(ticket)
        await self._session.commit()
        context = await self._tickets.build_context(ticket)

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "category": context.category_name,
                "assigned_to": ticket.assigned_to,
                "assignment_tier": spoc.tier
            }
        )
        self._notify(NotificationKind.TICKET_CREATED, context)
        return context

    async def acknowledge(self, ticket_id: int, actor: str) -> TicketContext:
        ticket = await self._load(ticket_id)
        if not ticket.acknowledge(actor):
            return await self._tickets.build_context(ticket)
        context = await self._persist(ticket)
        self._notify(
            NotificationKind.STATUS_CHANGED, context,
            {"status": ticket.status.value, "actor": actor, "action": "acknowledged"}
        )
        return context

    async def set_tat(
        self,
        ticket_id: int,
        tat_text: str,
        actor: str,
        mark_in_progress: bool = False,
    ) -> TicketContext:
        """
        Set or extend the resolution TAT.

        An extension is logged as a ``tat_extension`` escalation event so
        reporting can tell it apart from ladder movement.
        """
        ticket = await self._load(ticket_id)
        now = utcnow()
        due_at = calculate_tat_date(tat_text, now)
        is_extension = ticket.set_tat(tat_text, due_at, actor, at=now, mark_in_progress=mark_in_progress)

        await self._tickets.save(ticket)
        if is_extension:
            await self._escalation.record(EscalationEvent(
                ticket_id=ticket.id,
                kind=EscalationEventKind.TAT_EXTENSION,
                from_level=ticket.escalation_level,
                to_level=ticket.escalation_level,
                occurred_at=now,
                assignee=ticket.assigned_to,
                due_at=due_at,
                reason=f"TAT extended to {tat_text}",
                actor=actor,
            ))
        await self._session.commit()
        context = await self._tickets.build_context(ticket)

        logger.info(
            "TAT set",
            extra={"ticket_id": ticket.id, "tat": tat_text, "extension": is_extension, "actor": actor}
        )
        self._notify(
            NotificationKind.TAT_SET, context,
            {
                "tat": tat_text,
                "due_at": due_at.isoformat(),
                "extension": is_extension,
                "extension_count": ticket.tat_extended_count,
                "actor": actor
            }
        )
        return context

    async def add_comment(
        self,
        ticket_id: int,
        text: str,
        author: str,
        source: str = "web",
    ) -> TicketContext:
        ticket = await self._load(ticket_id)
        comment = ticket.add_comment(text, author, source)
        context = await self._persist(ticket)
        self._notify(NotificationKind.COMMENT_ADDED, context, {"comment": comment, "actor": author})
        return context

    async def close(self, ticket_id: int, actor: str) -> TicketContext:
        ticket = await self._load(ticket_id)
        ticket.close(actor)
        context = await self._persist(ticket)
        logger.info("Ticket closed", extra={"ticket_id": ticket_id, "actor": actor})
        self._notify(
            NotificationKind.STATUS_CHANGED, context,
            {"status": ticket.status.value, "actor": actor, "action": "closed"}
        )
        return context

    async def reopen(self, ticket_id: int, actor: str) -> TicketContext:
        ticket = await self._load(ticket_id)
        ticket.reopen(actor)
        context = await self._persist(ticket)
        logger.info("Ticket reopened", extra={"ticket_id": ticket_id, "actor": actor})
        self._notify(
            NotificationKind.STATUS_CHANGED, context,
            {"status": ticket.status.value, "actor": actor, "action": "reopened"}
        )
        return context

    async def escalate(self, ticket_id: int, actor: str, reason: Optional[str] = None) -> TicketContext:
        """
        Move a ticket to the next level of its ladder on request.

        Raises:
            DomainException: The ticket is resolved or already at the top
                of its ladder
        """
        ticket = await self._load(ticket_id)
        if ticket.is_final:
            raise DomainException(
                f"Cannot escalate a {ticket.status.value} ticket", {"ticket_id": ticket_id}
            )
        context = await self._tickets.build_context(ticket)
        ladder = await self._escalation.ladder_for_context(context)

        event = ladder.advance(
            ticket,
            reason=reason or "Escalated on request",
            kind=EscalationEventKind.MANUAL_ESCALATION,
            actor=actor,
        )
        if event is None:
            raise DomainException(
                "No escalation level above the current one",
                {"ticket_id": ticket_id, "escalation_level": ticket.escalation_level}
            )

        await self._tickets.save(ticket)
        await self._escalation.record(event)
        await self._session.commit()
        context = await self._tickets.build_context(ticket)

        logger.info(
            "Ticket escalated manually",
            extra={
                "ticket_id": ticket_id,
                "actor": actor,
                "from_level": event.from_level,
                "to_level": event.to_level
            }
        )
        self._notify(
            NotificationKind.ESCALATED, context,
            {
                "from_level": event.from_level,
                "to_level": event.to_level,
                "reason": event.reason,
                "due_at": event.due_at.isoformat() if event.due_at else None,
                "actor": actor
            },
            event.channel,
        )
        return context
