"""Escalation domain layer."""

from campus_resolve.escalation.domain.entities import (
    Deadline,
    EscalationEvent,
    EscalationRule,
)
from campus_resolve.escalation.domain.ladder import EscalationLadder, NO_DEADLINE

__all__ = [
    "Deadline",
    "EscalationEvent",
    "EscalationRule",
    "EscalationLadder",
    "NO_DEADLINE",
]
