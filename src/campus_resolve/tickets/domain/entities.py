"""
Ticket Domain Entities
======================

The ticket aggregate and the routing context it is resolved against.

Staff actions mutate the ticket in place; history that reporting needs
(TAT extensions, comments, escalation timestamps) lives in ``metadata``.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from campus_resolve.config import TicketStatus, STATUS_DEFINITIONS
from campus_resolve.core import DomainException, utcnow


@dataclass
class Ticket:
    """A support ticket as the routing engine sees it."""

    id: Optional[int]
    created_by: str
    status: TicketStatus
    created_at: datetime
    updated_at: datetime

    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    scope_id: Optional[int] = None
    location: Optional[str] = None
    description: Optional[str] = None

    assigned_to: Optional[str] = None
    escalation_level: int = 0

    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    acknowledgement_due_at: Optional[datetime] = None
    resolution_due_at: Optional[datetime] = None

    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.escalation_level < 0:
            raise ValueError("escalation_level cannot be negative")

    # ---------- derived state ----------

    @property
    def is_final(self) -> bool:
        return STATUS_DEFINITIONS[self.status].is_final

    @property
    def progress_percent(self) -> int:
        return STATUS_DEFINITIONS[self.status].progress_percent

    @property
    def is_acknowledged(self) -> bool:
        return self.acknowledged_at is not None

    @property
    def field_slugs(self) -> Tuple[str, ...]:
        return tuple((self.metadata.get("fields") or {}).keys())

    @property
    def tat(self) -> Optional[str]:
        return self.metadata.get("tat")

    @property
    def tat_extended_count(self) -> int:
        return int(self.metadata.get("tat_extended_count", 0))

    @property
    def reopen_count(self) -> int:
        return int(self.metadata.get("reopen_count", 0))

    @property
    def escalation_triggers(self) -> List[str]:
        """Sweep triggers that already escalated this ticket."""
        return list(self.metadata.get("escalation_triggers", []))

    @property
    def comments(self) -> List[Dict[str, Any]]:
        return list(self.metadata.get("comments", []))

    # ---------- staff actions ----------

    def _touch(self, at: datetime) -> None:
        self.updated_at = at

    def _update_metadata(self, **values: Any) -> None:
        # Replace rather than mutate so ORM JSON change tracking sees it
        merged = copy.deepcopy(self.metadata)
        merged.update(values)
        self.metadata = merged

    def _require_active(self, action: str) -> None:
        if self.is_final:
            raise DomainException(
                f"Cannot {action} a {self.status.value} ticket", {"ticket_id": self.id}
            )

    def acknowledge(self, actor: str, at: Optional[datetime] = None) -> bool:
        """Record acknowledgement. Returns False if already acknowledged."""
        self._require_active("acknowledge")
        if self.is_acknowledged:
            return False
        at = at or utcnow()
        self.acknowledged_at = at
        self.acknowledged_by = actor
        if self.status in (TicketStatus.OPEN, TicketStatus.REOPENED):
            self.status = TicketStatus.IN_PROGRESS
        self._touch(at)
        return True

    def set_tat(
        self,
        tat_text: str,
        due_at: datetime,
        actor: str,
        at: Optional[datetime] = None,
        mark_in_progress: bool = False,
    ) -> bool:
        """
        Set the resolution deadline from a staff-entered TAT.

        Returns True when this extends a TAT that was already set.
        """
        self._require_active("set TAT on")
        at = at or utcnow()
        is_extension = self.tat is not None

        values: Dict[str, Any] = {
            "tat": tat_text,
            "tat_date": due_at.isoformat(),
            "tat_set_at": at.isoformat(),
            "tat_set_by": actor,
        }
        if is_extension:
            extensions = list(self.metadata.get("tat_extensions", []))
            extensions.append({
                "previous_tat": self.tat,
                "previous_tat_date": self.metadata.get("tat_date"),
                "new_tat": tat_text,
                "new_tat_date": due_at.isoformat(),
                "extended_at": at.isoformat(),
                "extended_by": actor,
            })
            values["tat_extensions"] = extensions
            values["tat_extended_count"] = self.tat_extended_count + 1
        self._update_metadata(**values)

        self.resolution_due_at = due_at
        if not self.is_acknowledged:
            self.acknowledged_at = at
            self.acknowledged_by = actor
        if mark_in_progress and self.status != TicketStatus.IN_PROGRESS:
            self.status = TicketStatus.IN_PROGRESS
        self._touch(at)
        return is_extension

    def escalate(
        self,
        level: int,
        assignee: Optional[str],
        due_at: Optional[datetime],
        at: Optional[datetime] = None,
    ) -> None:
        """Move the ticket up the escalation ladder. Levels never go down."""
        self._require_active("escalate")
        if level <= self.escalation_level:
            raise DomainException(
                "Escalation level must increase",
                {"ticket_id": self.id, "current": self.escalation_level, "requested": level}
            )
        at = at or utcnow()
        self.escalation_level = level
        if assignee:
            self.assigned_to = assignee
        self.resolution_due_at = due_at
        self.status = TicketStatus.ESCALATED
        self._update_metadata(
            last_escalation_at=at.isoformat(),
            sla_breached_at=self.metadata.get("sla_breached_at") or at.isoformat(),
        )
        self._touch(at)

    def record_escalation_trigger(self, trigger: str) -> None:
        if trigger not in self.escalation_triggers:
            self._update_metadata(escalation_triggers=self.escalation_triggers + [trigger])

    def add_comment(
        self,
        text: str,
        author: str,
        source: str = "web",
        at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if not text or not text.strip():
            raise DomainException("Comment cannot be empty", {"ticket_id": self.id})
        at = at or utcnow()
        comment = {
            "text": text.strip(),
            "author": author,
            "created_at": at.isoformat(),
            "source": source,
        }
        self._update_metadata(comments=self.comments + [comment])
        self._touch(at)
        return comment

    def close(self, actor: str, at: Optional[datetime] = None) -> None:
        self._require_active("close")
        at = at or utcnow()
        self.status = TicketStatus.RESOLVED
        self.resolved_at = at
        self._update_metadata(resolved_by=actor)
        self._touch(at)

    @property
    def slack_thread(self) -> Tuple[Optional[str], Optional[str]]:
        """(channel, ts) of the creation message, replies thread under it."""
        return self.metadata.get("slack_channel"), self.metadata.get("slack_message_ts")

    def link_slack_thread(self, channel: str, ts: str) -> None:
        # Not a staff action, updated_at stays put
        self._update_metadata(slack_channel=channel, slack_message_ts=ts)

    def reopen(self, actor: str, at: Optional[datetime] = None) -> None:
        if not self.is_final:
            raise DomainException("Only resolved tickets can be reopened", {"ticket_id": self.id})
        at = at or utcnow()
        self.status = TicketStatus.REOPENED
        self.resolved_at = None
        self._update_metadata(
            reopen_count=self.reopen_count + 1,
            reopened_at=at.isoformat(),
            reopened_by=actor,
        )
        self._touch(at)


@dataclass(frozen=True)
class TicketContext:
    """Routing attributes of a ticket, resolved to names."""

    ticket: Ticket
    category_name: Optional[str] = None
    subcategory_name: Optional[str] = None
    domain_id: Optional[int] = None
    domain_name: Optional[str] = None
    scope_name: Optional[str] = None
    category_default_assignee: Optional[str] = None

    @property
    def routing_scope(self) -> Optional[str]:
        """Scope name, falling back to the free-text location."""
        return self.scope_name or self.ticket.location
