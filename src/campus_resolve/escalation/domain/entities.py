"""
Escalation Domain Entities
==========================

Rules, deadlines and the events that record ladder movement and staff
TAT extensions.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from campus_resolve.config import EscalationEventKind, NotifyChannel


@dataclass(frozen=True)
class EscalationRule:
    """
    One rung of a (domain, scope) ladder.

    ``scope_id`` None makes the rule domain-wide. ``assignee`` is an external
    id; a rule without one escalates the level without reassigning.
    """

    domain_id: int
    level: int
    tat_hours: int
    notify_channel: NotifyChannel = NotifyChannel.SLACK
    scope_id: Optional[int] = None
    assignee: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        if self.level < 1:
            raise ValueError("level must be a positive integer")
        if self.tat_hours < 1:
            raise ValueError("tat_hours must be a positive integer")

    @property
    def is_scoped(self) -> bool:
        return self.scope_id is not None


@dataclass(frozen=True)
class Deadline:
    """The currently active deadline and the rule that fires when it lapses."""

    due_at: Optional[datetime]
    level: Optional[int]
    channel: Optional[NotifyChannel]
    assignee: Optional[str]

    def has_lapsed(self, now: datetime) -> bool:
        return self.due_at is not None and self.due_at <= now


@dataclass(frozen=True)
class EscalationEvent:
    """Audit record for a ladder step or a staff TAT extension."""

    ticket_id: int
    kind: EscalationEventKind
    from_level: int
    to_level: int
    occurred_at: datetime
    assignee: Optional[str] = None
    channel: Optional[NotifyChannel] = None
    due_at: Optional[datetime] = None
    reason: Optional[str] = None
    actor: Optional[str] = None
    id: Optional[int] = None
