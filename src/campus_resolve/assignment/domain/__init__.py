"""Assignment domain layer."""

from campus_resolve.assignment.domain.entities import (
    AssignmentContext,
    SpocResolution,
    UNASSIGNED,
)

__all__ = ["AssignmentContext", "SpocResolution", "UNASSIGNED"]
