"""
Ticket Application Layer
========================

Ticket service, repository and notifier interfaces, and DTOs.
"""

from campus_resolve.tickets.application.dto import (
    TicketCreateRequest,
    TatRequest,
    CommentRequest,
    EscalateRequest,
    DeadlineResponse,
    EscalationEventResponse,
    TicketResponse,
    TicketDetailResponse,
)
from campus_resolve.tickets.application.services import (
    TicketService,
    ITicketRepository,
    ITicketNotifier,
    assignment_context,
    iter_active_tickets,
)

__all__ = [
    # DTOs
    "TicketCreateRequest",
    "TatRequest",
    "CommentRequest",
    "EscalateRequest",
    "DeadlineResponse",
    "EscalationEventResponse",
    "TicketResponse",
    "TicketDetailResponse",
    # Services
    "TicketService",
    "assignment_context",
    "iter_active_tickets",
    # Interfaces
    "ITicketRepository",
    "ITicketNotifier",
]
