"""
Assignment Domain
=================

Input and outcome of single point of contact (SPOC) resolution.
"""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass(frozen=True)
class AssignmentContext:
    """
    Everything a resolution tier may look at.

    ``category`` is the category name; categories are named after their
    routing domain, so it stands in for ``domain`` when none is given.
    """

    category: str
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    field_slugs: Tuple[str, ...] = ()
    domain: Optional[str] = None
    scope: Optional[str] = None
    category_default_assignee: Optional[str] = None

    @property
    def routing_domain(self) -> str:
        return self.domain or self.category


@dataclass(frozen=True)
class SpocResolution:
    """Resolved external id and the tier that produced it."""

    principal_id: Optional[str] = None
    tier: Optional[str] = None

    @property
    def is_assigned(self) -> bool:
        return self.principal_id is not None


UNASSIGNED = SpocResolution()
