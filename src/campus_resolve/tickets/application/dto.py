"""
Ticket Application DTOs
=======================

Pydantic models for the ticket endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from campus_resolve.escalation.domain import Deadline, EscalationEvent
from campus_resolve.tickets.domain import TicketContext

TicketStatusStr = Literal["open", "in_progress", "awaiting_student", "reopened", "escalated", "resolved"]
ChannelStr = Literal["slack", "email"]


# ========== Request DTOs ==========

class TicketCreateRequest(BaseModel):
    """Request body for raising a ticket."""
    category_id: int = Field(..., ge=1, description="Category the ticket is filed under")
    subcategory_id: Optional[int] = Field(None, ge=1)
    scope_id: Optional[int] = Field(None, ge=1, description="Explicit scope; otherwise matched from location")
    location: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    fields: Dict[str, Any] = Field(default_factory=dict, description="Dynamic form values keyed by field slug")


class TatRequest(BaseModel):
    """Request body for setting or extending a TAT."""
    tat: str = Field(..., min_length=1, max_length=64, description="e.g. '2 days', '1 week', 'tomorrow'")
    mark_in_progress: bool = Field(default=False)

    @field_validator("tat")
    @classmethod
    def strip_tat(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("tat cannot be blank")
        return v.strip()


class CommentRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)


class EscalateRequest(BaseModel):
    """Optional body for a manual escalation."""
    reason: Optional[str] = Field(default=None, max_length=2000)


# ========== Response DTOs ==========

class DeadlineResponse(BaseModel):
    """The active deadline and the rule that fires when it lapses."""
    due_at: Optional[datetime] = None
    level: Optional[int] = None
    channel: Optional[ChannelStr] = None
    assignee: Optional[str] = None

    @classmethod
    def from_deadline(cls, deadline: Deadline) -> "DeadlineResponse":
        return cls(
            due_at=deadline.due_at,
            level=deadline.level,
            channel=deadline.channel.value if deadline.channel else None,
            assignee=deadline.assignee,
        )


class EscalationEventResponse(BaseModel):
    kind: str
    from_level: int
    to_level: int
    occurred_at: datetime
    assignee: Optional[str] = None
    channel: Optional[ChannelStr] = None
    due_at: Optional[datetime] = None
    reason: Optional[str] = None
    actor: Optional[str] = None

    @classmethod
    def from_event(cls, event: EscalationEvent) -> "EscalationEventResponse":
        return cls(
            kind=event.kind.value,
            from_level=event.from_level,
            to_level=event.to_level,
            occurred_at=event.occurred_at,
            assignee=event.assignee,
            channel=event.channel.value if event.channel else None,
            due_at=event.due_at,
            reason=event.reason,
            actor=event.actor,
        )


class TicketResponse(BaseModel):
    """A ticket with its routing names."""
    id: int
    status: TicketStatusStr
    progress_percent: int
    created_by: str
    assigned_to: Optional[str] = None
    category_id: Optional[int] = None
    category: Optional[str] = None
    subcategory_id: Optional[int] = None
    subcategory: Optional[str] = None
    domain: Optional[str] = None
    scope_id: Optional[int] = None
    scope: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    escalation_level: int = 0
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    acknowledgement_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    tat: Optional[str] = None
    tat_extended_count: int = 0
    comments: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_context(cls, context: TicketContext) -> "TicketResponse":
        ticket = context.ticket
        return cls(
            id=ticket.id,
            status=ticket.status.value,
            progress_percent=ticket.progress_percent,
            created_by=ticket.created_by,
            assigned_to=ticket.assigned_to,
            category_id=ticket.category_id,
            category=context.category_name,
            subcategory_id=ticket.subcategory_id,
            subcategory=context.subcategory_name,
            domain=context.domain_name,
            scope_id=ticket.scope_id,
            scope=context.scope_name,
            location=ticket.location,
            description=ticket.description,
            escalation_level=ticket.escalation_level,
            acknowledged_at=ticket.acknowledged_at,
            acknowledged_by=ticket.acknowledged_by,
            acknowledgement_due_at=ticket.acknowledgement_due_at,
            resolution_due_at=ticket.resolution_due_at,
            resolved_at=ticket.resolved_at,
            tat=ticket.tat,
            tat_extended_count=ticket.tat_extended_count,
            comments=ticket.comments,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )


class TicketDetailResponse(BaseModel):
    """Ticket plus its active deadline and escalation history."""
    ticket: TicketResponse
    next_deadline: DeadlineResponse
    escalations: List[EscalationEventResponse] = Field(default_factory=list)
