"""
Ticket Controllers (API Routes)
===============================

Ticket creation and staff actions. Every mutation commits before its
notifications are queued; delivery happens in the background.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.application import AccessService
from campus_resolve.access.interfaces.dependencies import (
    get_access_service,
    get_current_principal_id,
    require_role,
)
from campus_resolve.config import Role
from campus_resolve.container import ServiceContainer
from campus_resolve.core import PermissionDeniedException
from campus_resolve.infrastructure.database import get_session
from campus_resolve.shared.api.dependencies import get_container
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.application import (
    CommentRequest,
    DeadlineResponse,
    EscalateRequest,
    EscalationEventResponse,
    TatRequest,
    TicketCreateRequest,
    TicketDetailResponse,
    TicketResponse,
    TicketService,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/tickets", tags=["Tickets"])

# Lowest role that may act on tickets it did not raise
STAFF_ROLE = Role.COMMITTEE


# ========== Dependencies ==========

async def get_ticket_service(
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> TicketService:
    return container.ticket_service(session)


async def _require_creator_or_staff(
    ticket_id: int,
    principal_id: str,
    tickets: TicketService,
    access: AccessService,
) -> None:
    context = await tickets.get(ticket_id)
    if context.ticket.created_by != principal_id:
        await access.require(principal_id, STAFF_ROLE)


# ========== Endpoints ==========

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Raise a ticket"
)
async def create_ticket(
    request: TicketCreateRequest,
    principal_id: str = Depends(get_current_principal_id),
    tickets: TicketService = Depends(get_ticket_service),
):
    """
    Create a ticket and assign its SPOC.

    The SPOC is chosen by the first assignment tier that yields a principal;
    the acknowledgement deadline comes from the first escalation rule of the
    ticket's domain/scope.
    """
    context = await tickets.create(
        created_by=principal_id,
        category_id=request.category_id,
        subcategory_id=request.subcategory_id,
        location=request.location,
        description=request.description,
        fields=request.fields,
        scope_id=request.scope_id,
    )
    return TicketResponse.from_context(context)


@router.get("/{ticket_id}", response_model=TicketDetailResponse, summary="Get a ticket")
async def get_ticket(
    ticket_id: int,
    principal_id: str = Depends(get_current_principal_id),
    tickets: TicketService = Depends(get_ticket_service),
    access: AccessService = Depends(get_access_service),
):
    """Ticket with its active escalation deadline and escalation history."""
    await _require_creator_or_staff(ticket_id, principal_id, tickets, access)
    context, deadline, events = await tickets.details(ticket_id)
    return TicketDetailResponse(
        ticket=TicketResponse.from_context(context),
        next_deadline=DeadlineResponse.from_deadline(deadline),
        escalations=[EscalationEventResponse.from_event(e) for e in events],
    )


@router.post("/{ticket_id}/acknowledge", response_model=TicketResponse, summary="Acknowledge a ticket")
async def acknowledge_ticket(
    ticket_id: int,
    principal_id: str = Depends(require_role(STAFF_ROLE)),
    tickets: TicketService = Depends(get_ticket_service),
):
    context = await tickets.acknowledge(ticket_id, principal_id)
    return TicketResponse.from_context(context)


@router.post("/{ticket_id}/tat", response_model=TicketResponse, summary="Set or extend the TAT")
async def set_ticket_tat(
    ticket_id: int,
    request: TatRequest,
    principal_id: str = Depends(require_role(STAFF_ROLE)),
    tickets: TicketService = Depends(get_ticket_service),
):
    """
    Set the resolution deadline from a free-text TAT such as `2 days`.

    Setting a TAT acknowledges the ticket if needed. Changing an existing
    TAT is recorded as an extension.
    """
    context = await tickets.set_tat(ticket_id, request.tat, principal_id, request.mark_in_progress)
    return TicketResponse.from_context(context)


@router.post("/{ticket_id}/comments", response_model=TicketResponse, summary="Comment on a ticket")
async def comment_on_ticket(
    ticket_id: int,
    request: CommentRequest,
    principal_id: str = Depends(get_current_principal_id),
    tickets: TicketService = Depends(get_ticket_service),
    access: AccessService = Depends(get_access_service),
):
    await _require_creator_or_staff(ticket_id, principal_id, tickets, access)
    context = await tickets.add_comment(ticket_id, request.text, principal_id)
    return TicketResponse.from_context(context)


@router.post("/{ticket_id}/close", response_model=TicketResponse, summary="Resolve a ticket")
async def close_ticket(
    ticket_id: int,
    principal_id: str = Depends(require_role(STAFF_ROLE)),
    tickets: TicketService = Depends(get_ticket_service),
):
    context = await tickets.close(ticket_id, principal_id)
    return TicketResponse.from_context(context)


@router.post("/{ticket_id}/reopen", response_model=TicketResponse, summary="Reopen a resolved ticket")
async def reopen_ticket(
    ticket_id: int,
    principal_id: str = Depends(get_current_principal_id),
    tickets: TicketService = Depends(get_ticket_service),
    access: AccessService = Depends(get_access_service),
):
    await _require_creator_or_staff(ticket_id, principal_id, tickets, access)
    context = await tickets.reopen(ticket_id, principal_id)
    return TicketResponse.from_context(context)


@router.post("/{ticket_id}/escalate", response_model=TicketResponse, summary="Escalate a ticket")
async def escalate_ticket(
    ticket_id: int,
    request: Optional[EscalateRequest] = None,
    principal_id: str = Depends(get_current_principal_id),
    tickets: TicketService = Depends(get_ticket_service),
    access: AccessService = Depends(get_access_service),
):
    """
    Move the ticket to the next level of its escalation ladder.

    Students may escalate their own tickets and admins any ticket.
    Committee members cannot escalate.
    """
    context = await tickets.get(ticket_id)
    role = await access.resolve_role(principal_id)
    if role == Role.COMMITTEE or (role == Role.STUDENT and context.ticket.created_by != principal_id):
        raise PermissionDeniedException(
            "Not allowed to escalate this ticket", {"ticket_id": ticket_id, "role": role.value}
        )
    reason = request.reason if request else None
    context = await tickets.escalate(ticket_id, principal_id, reason)
    return TicketResponse.from_context(context)


tickets_router = router
