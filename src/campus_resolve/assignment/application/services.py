"""
SPOC Resolution
===============

Chain of responsibility that picks the one principal responsible for a
ticket. Tiers run in a fixed order and the first one that yields a
principal wins:

1. field        direct assignee of a submitted form field
2. domain_scope the single principal granted the (domain, scope) pair
3. subcategory  direct assignee of the subcategory
4. category     earliest multi-admin category assignment
5. default      the category's default admin
6. legacy       first principal granted the (domain, scope) pair

Tier 2 only answers when exactly one principal matches; tier 6 accepts the
first of several. A tier that needs an optional schema surface is skipped
when the probe reports it absent, and a tier that raises is logged and
skipped. No match is a normal outcome: the ticket stays unassigned.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from campus_resolve.assignment.domain import AssignmentContext, SpocResolution, UNASSIGNED
from campus_resolve.config import OptionalSurface
from campus_resolve.infrastructure.database import SavepointFactory, no_savepoint
from campus_resolve.infrastructure.database.probe import SchemaProbe
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IAssignmentRepository(ABC):
    """Read access to every assignment surface. All methods return external ids."""

    @abstractmethod
    async def find_field_assignee(self, subcategory_id: int, field_slugs: Sequence[str]) -> Optional[str]:
        """Assignee of the first active matching field."""

    @abstractmethod
    async def find_domain_scope_candidates(self, domain: str, scope: Optional[str]) -> List[str]:
        """Principals whose primary or secondary grant matches, primary first, de-duplicated."""

    @abstractmethod
    async def find_subcategory_assignee(self, subcategory_id: int) -> Optional[str]:
        """Direct subcategory assignee."""

    @abstractmethod
    async def find_category_assignee(self, category_id: int) -> Optional[str]:
        """Earliest-created category assignment."""

    @abstractmethod
    async def find_category_default_assignee(self, category_id: int) -> Optional[str]:
        """The category's default admin."""


# ========== Tiers ==========

class ResolutionTier(ABC):
    """One link in the chain."""

    name: str = "tier"
    surface: Optional[str] = None

    def __init__(self, repository: IAssignmentRepository):
        self._repository = repository

    @abstractmethod
    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        """External id of the responsible principal, or None to pass."""


class FieldAssignmentTier(ResolutionTier):
    name = "field"
    surface = OptionalSurface.FIELD_ASSIGNMENT

    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        if context.subcategory_id is None or not context.field_slugs:
            return None
        return await self._repository.find_field_assignee(context.subcategory_id, context.field_slugs)


class DomainScopeTier(ResolutionTier):
    name = "domain_scope"

    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        candidates = await self._repository.find_domain_scope_candidates(
            context.routing_domain, context.scope
        )
        if len(candidates) == 1:
            return candidates[0]
        if candidates:
            logger.debug(
                "Ambiguous domain/scope match, deferring",
                extra={"domain": context.routing_domain, "scope": context.scope, "candidates": len(candidates)}
            )
        return None


class SubcategoryAssignmentTier(ResolutionTier):
    name = "subcategory"
    surface = OptionalSurface.SUBCATEGORY_ASSIGNMENT

    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        if context.subcategory_id is None:
            return None
        return await self._repository.find_subcategory_assignee(context.subcategory_id)


class CategoryAssignmentTier(ResolutionTier):
    name = "category"
    surface = OptionalSurface.CATEGORY_ASSIGNMENTS

    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        if context.category_id is None:
            return None
        return await self._repository.find_category_assignee(context.category_id)


class CategoryDefaultTier(ResolutionTier):
    name = "default"

    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        if context.category_default_assignee:
            return context.category_default_assignee
        if context.category_id is None:
            return None
        return await self._repository.find_category_default_assignee(context.category_id)


class LegacyDomainScopeTier(ResolutionTier):
    name = "legacy"

    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        candidates = await self._repository.find_domain_scope_candidates(
            context.routing_domain, context.scope
        )
        return candidates[0] if candidates else None


DEFAULT_TIERS = (
    FieldAssignmentTier,
    DomainScopeTier,
    SubcategoryAssignmentTier,
    CategoryAssignmentTier,
    CategoryDefaultTier,
    LegacyDomainScopeTier,
)


# ========== Resolver ==========

class SpocResolver:
    """Runs the tiers in order until one yields a principal."""

    def __init__(
        self,
        tiers: Sequence[ResolutionTier],
        probe: Optional[SchemaProbe] = None,
        savepoint: SavepointFactory = no_savepoint,
    ):
        self._tiers = list(tiers)
        self._probe = probe
        self._savepoint = savepoint

    @classmethod
    def with_default_tiers(
        cls,
        repository: IAssignmentRepository,
        probe: Optional[SchemaProbe] = None,
        savepoint: SavepointFactory = no_savepoint,
    ) -> "SpocResolver":
        return cls([tier(repository) for tier in DEFAULT_TIERS], probe, savepoint)

    @property
    def tier_names(self) -> List[str]:
        return [t.name for t in self._tiers]

    async def _surface_available(self, tier: ResolutionTier) -> bool:
        if tier.surface is None or self._probe is None:
            return True
        return await self._probe.exists(tier.surface)

    async def explain(self, context: AssignmentContext) -> SpocResolution:
        """Resolve and report which tier answered."""
        for tier in self._tiers:
            try:
                if not await self._surface_available(tier):
                    continue
                async with self._savepoint():
                    principal_id = await tier.resolve(context)
            except Exception as e:
                logger.warning(
                    "SPOC tier failed, trying next tier",
                    extra={"tier": tier.name, "category": context.category, "error": str(e)}
                )
                continue

            if principal_id:
                logger.info(
                    "SPOC resolved",
                    extra={
                        "tier": tier.name,
                        "principal_id": principal_id,
                        "category": context.category,
                        "scope": context.scope
                    }
                )
                return SpocResolution(principal_id=principal_id, tier=tier.name)

        logger.info(
            "No SPOC found, ticket stays unassigned",
            extra={"category": context.category, "domain": context.routing_domain, "scope": context.scope}
        )
        return UNASSIGNED

    async def resolve(self, context: AssignmentContext) -> Optional[str]:
        """External id of the SPOC, or None."""
        return (await self.explain(context)).principal_id
