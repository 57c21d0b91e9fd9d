"""
Access Application Services
===========================

Role resolution with a two-tier trust policy, capability checks and
role mutation.

Lookup failures after authentication degrade to the lowest role: it is
always safe to under-grant on a read path.
"""

from abc import ABC, abstractmethod
from typing import Optional

from campus_resolve.access.domain import Principal, role_satisfies
from campus_resolve.access.infrastructure.cache import RoleCache
from campus_resolve.config import Role, LOWEST_ROLE
from campus_resolve.core import (
    PermissionDeniedException,
    RepositoryException,
    ValidationException,
)
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IPrincipalRepository(ABC):
    """Interface for principal data access."""

    @abstractmethod
    async def get_role(self, external_id: str) -> Optional[Role]:
        """Role of the principal, or None when unknown."""

    @abstractmethod
    async def get_principal(self, external_id: str) -> Optional[Principal]:
        """Principal with its primary and secondary grants."""

    @abstractmethod
    async def update_role(
        self,
        external_id: str,
        role: Role,
        domain: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> Principal:
        """Persist a role (and primary grant). Raises ResourceNotFoundException."""

    @abstractmethod
    async def clear_grants(self, external_id: str) -> None:
        """Drop primary and secondary grants."""

    @abstractmethod
    async def commit(self) -> None:
        """Make pending role changes durable."""


# ========== Application Services ==========

class AccessService:
    """
    Resolves roles and answers capability questions.

    The cache is injected so its lifetime follows the process, not the
    request; repositories are request scoped.
    """

    def __init__(self, repository: IPrincipalRepository, cache: RoleCache):
        self._repository = repository
        self._cache = cache

    async def resolve_role(self, principal_id: str) -> Role:
        """
        Resolve a principal's role.

        Never raises: unknown principals and lookup failures resolve to the
        lowest role.
        """
        cached = self._cache.get(principal_id)
        if cached is not None:
            return cached

        try:
            role = await self._repository.get_role(principal_id)
        except RepositoryException as e:
            logger.error(
                "Role lookup failed, defaulting to lowest role",
                extra={"principal_id": principal_id, "error": e.message}
            )
            return LOWEST_ROLE

        if role is None:
            logger.warning(
                "Principal not found, defaulting to lowest role",
                extra={"principal_id": principal_id}
            )
            return LOWEST_ROLE

        self._cache.put(principal_id, role)
        return role

    async def has_capability(
        self,
        principal_id: str,
        role: Role,
        domain: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> bool:
        """
        True when the principal's role is at least ``role`` and, if a domain
        is requested, one of its grants covers domain (and scope).
        """
        actual = await self.resolve_role(principal_id)
        if not role_satisfies(actual, role):
            return False
        if domain is None:
            return True

        try:
            principal = await self._repository.get_principal(principal_id)
        except RepositoryException as e:
            logger.error(
                "Grant lookup failed",
                extra={"principal_id": principal_id, "error": e.message}
            )
            return False

        return principal is not None and principal.has_grant(domain, scope)

    async def require(
        self,
        principal_id: str,
        role: Role,
        domain: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> None:
        """Raise PermissionDeniedException unless has_capability holds."""
        if not await self.has_capability(principal_id, role, domain, scope):
            raise PermissionDeniedException(
                f"{role.value} access required",
                {"principal_id": principal_id, "domain": domain, "scope": scope}
            )

    async def get_principal(self, principal_id: str) -> Optional[Principal]:
        return await self._repository.get_principal(principal_id)

    async def set_role(
        self,
        principal_id: str,
        role: Role,
        domain: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> Principal:
        """
        Change a principal's role.

        Admin-level roles take ``domain``/``scope`` as their primary grant;
        demotion to the lowest role removes every grant. The change is committed
        before the cache entry is dropped, so a concurrent resolve cannot
        re-cache the old role from an uncommitted read.
        """
        if scope is not None and domain is None:
            raise ValidationException("scope requires a domain")

        try:
            if role == LOWEST_ROLE:
                await self._repository.clear_grants(principal_id)
                principal = await self._repository.update_role(principal_id, role)
            else:
                principal = await self._repository.update_role(principal_id, role, domain, scope)
            await self._repository.commit()
        finally:
            self._cache.invalidate(principal_id)

        logger.info(
            "Principal role updated",
            extra={"principal_id": principal_id, "role": role.value, "domain": domain, "scope": scope}
        )
        return principal

    def invalidate(self, principal_id: str) -> None:
        self._cache.invalidate(principal_id)
