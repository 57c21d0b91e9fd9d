"""Assignment application layer: the SPOC resolver and its tiers."""

from campus_resolve.assignment.application.services import (
    IAssignmentRepository,
    ResolutionTier,
    FieldAssignmentTier,
    DomainScopeTier,
    SubcategoryAssignmentTier,
    CategoryAssignmentTier,
    CategoryDefaultTier,
    LegacyDomainScopeTier,
    SpocResolver,
)

__all__ = [
    "IAssignmentRepository",
    "ResolutionTier",
    "FieldAssignmentTier",
    "DomainScopeTier",
    "SubcategoryAssignmentTier",
    "CategoryAssignmentTier",
    "CategoryDefaultTier",
    "LegacyDomainScopeTier",
    "SpocResolver",
]
