"""Tests for AccessService with an in-memory principal repository."""

from typing import Dict, Optional

import pytest

from campus_resolve.access.application import AccessService, IPrincipalRepository
from campus_resolve.access.domain import Grant, Principal
from campus_resolve.access.infrastructure import RoleCache
from campus_resolve.config import Role
from campus_resolve.core import (
    PermissionDeniedException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)


class InMemoryPrincipalRepository(IPrincipalRepository):

    def __init__(self, principals: Dict[str, Principal]):
        self.principals = principals
        self.role_reads = 0
        self.fail = False
        self.cleared = []
        self.commits = 0
        self.on_commit = None

    async def get_role(self, external_id: str) -> Optional[Role]:
        self.role_reads += 1
        if self.fail:
            raise RepositoryException("connection reset")
        principal = self.principals.get(external_id)
        return principal.role if principal else None

    async def get_principal(self, external_id: str) -> Optional[Principal]:
        if self.fail:
            raise RepositoryException("connection reset")
        return self.principals.get(external_id)

    async def update_role(self, external_id, role, domain=None, scope=None) -> Principal:
        principal = self.principals.get(external_id)
        if principal is None:
            raise ResourceNotFoundException("Principal", external_id)
        principal.role = role
        if domain is not None:
            principal.primary_grant = Grant(domain, scope)
        return principal

    async def clear_grants(self, external_id: str) -> None:
        self.cleared.append(external_id)
        principal = self.principals[external_id]
        principal.primary_grant = None
        principal.secondary_grants = []

    async def commit(self) -> None:
        if self.on_commit is not None:
            self.on_commit()
        self.commits += 1


@pytest.fixture
def repository():
    return InMemoryPrincipalRepository({
        "student-1": Principal(id="u1", external_id="student-1", role=Role.STUDENT),
        "spoc-1": Principal(
            id="u2", external_id="spoc-1", role=Role.COMMITTEE,
            primary_grant=Grant("Hostel", "North Tower"),
            secondary_grants=[Grant("College")],
        ),
        "root-1": Principal(id="u3", external_id="root-1", role=Role.SUPER_ADMIN),
    })


@pytest.fixture
def cache():
    return RoleCache()


@pytest.fixture
def service(repository, cache):
    return AccessService(repository, cache)


class TestResolveRole:
    """Tests for resolve_role."""

    @pytest.mark.asyncio
    async def test_known_principal(self, service):
        """Test a stored role is returned."""
        assert await service.resolve_role("spoc-1") == Role.COMMITTEE

    @pytest.mark.asyncio
    async def test_unknown_principal_is_student(self, service):
        """Test unknown principals resolve to the lowest role."""
        assert await service.resolve_role("nobody") == Role.STUDENT

    @pytest.mark.asyncio
    async def test_lookup_failure_is_student(self, service, repository):
        """Test a repository failure degrades to the lowest role."""
        repository.fail = True
        assert await service.resolve_role("root-1") == Role.STUDENT

    @pytest.mark.asyncio
    async def test_student_served_from_cache(self, service, repository):
        """Test the second student lookup does not hit the repository."""
        await service.resolve_role("student-1")
        await service.resolve_role("student-1")
        assert repository.role_reads == 1

    @pytest.mark.asyncio
    async def test_elevated_roles_always_reread(self, service, repository):
        """Test elevated roles are read every time."""
        await service.resolve_role("root-1")
        await service.resolve_role("root-1")
        assert repository.role_reads == 2


class TestHasCapability:
    """Tests for has_capability and require."""

    @pytest.mark.asyncio
    async def test_role_ordering(self, service):
        """Test higher roles satisfy lower requirements."""
        assert await service.has_capability("root-1", Role.COMMITTEE)
        assert await service.has_capability("spoc-1", Role.COMMITTEE)
        assert not await service.has_capability("spoc-1", Role.ADMIN)
        assert not await service.has_capability("student-1", Role.COMMITTEE)

    @pytest.mark.asyncio
    async def test_domain_and_scope_grants(self, service):
        """Test primary and secondary grants are both considered."""
        assert await service.has_capability("spoc-1", Role.COMMITTEE, "Hostel")
        assert await service.has_capability("spoc-1", Role.COMMITTEE, "Hostel", "North Tower")
        assert not await service.has_capability("spoc-1", Role.COMMITTEE, "Hostel", "South Tower")
        assert await service.has_capability("spoc-1", Role.COMMITTEE, "College")
        assert not await service.has_capability("spoc-1", Role.COMMITTEE, "College", "Block A")

    @pytest.mark.asyncio
    async def test_super_admin_needs_grant_for_domain(self, service):
        """Test a domain check is not bypassed by role alone."""
        assert not await service.has_capability("root-1", Role.ADMIN, "Hostel")

    @pytest.mark.asyncio
    async def test_require_raises(self, service):
        """Test require raises PermissionDeniedException."""
        with pytest.raises(PermissionDeniedException):
            await service.require("student-1", Role.COMMITTEE)
        await service.require("spoc-1", Role.COMMITTEE)


class TestSetRole:
    """Tests for set_role."""

    @pytest.mark.asyncio
    async def test_promotion_visible_immediately(self, service):
        """Test a cached student role is dropped on promotion."""
        assert await service.resolve_role("student-1") == Role.STUDENT
        await service.set_role("student-1", Role.COMMITTEE, "Hostel")
        assert await service.resolve_role("student-1") == Role.COMMITTEE

    @pytest.mark.asyncio
    async def test_demotion_clears_grants(self, service, repository):
        """Test demoting to student removes every grant."""
        principal = await service.set_role("spoc-1", Role.STUDENT)
        assert repository.cleared == ["spoc-1"]
        assert principal.grants == []
        assert await service.resolve_role("spoc-1") == Role.STUDENT

    @pytest.mark.asyncio
    async def test_scope_requires_domain(self, service):
        """Test a scope without a domain is rejected."""
        with pytest.raises(ValidationException):
            await service.set_role("spoc-1", Role.ADMIN, scope="North Tower")

    @pytest.mark.asyncio
    async def test_unknown_principal(self, service):
        """Test promoting an unknown principal raises ResourceNotFoundException."""
        with pytest.raises(ResourceNotFoundException):
            await service.set_role("nobody", Role.ADMIN)

    @pytest.mark.asyncio
    async def test_change_committed(self, service, repository):
        """Test the role change is committed by the service."""
        await service.set_role("student-1", Role.COMMITTEE, "Hostel")
        assert repository.commits == 1

    @pytest.mark.asyncio
    async def test_read_racing_the_commit_is_not_kept(self, service, repository, cache):
        """Test a role cached by a concurrent request before the commit is dropped."""
        # Another request resolves the old role while the change is uncommitted
        repository.on_commit = lambda: cache.put("student-1", Role.STUDENT)

        await service.set_role("student-1", Role.COMMITTEE, "Hostel")
        assert await service.resolve_role("student-1") == Role.COMMITTEE

    @pytest.mark.asyncio
    async def test_cache_dropped_when_commit_fails(self, service, repository, cache):
        """Test a failed commit still invalidates the cached role."""
        assert await service.resolve_role("student-1") == Role.STUDENT

        def fail():
            raise RepositoryException("commit failed")

        repository.on_commit = fail
        with pytest.raises(RepositoryException):
            await service.set_role("student-1", Role.COMMITTEE, "Hostel")
        assert cache.get("student-1") is None
