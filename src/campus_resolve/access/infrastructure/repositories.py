"""
Access Infrastructure Repositories
==================================

SQLAlchemy implementation of the principal repository.
"""

from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.application.services import IPrincipalRepository
from campus_resolve.access.domain import Grant, Principal
from campus_resolve.access.infrastructure.models import (
    AdminAssignmentModel, DomainModel, ScopeModel, UserModel
)
from campus_resolve.config import Role, LOWEST_ROLE
from campus_resolve.core import (
    RepositoryException, ResourceNotFoundException, ValidationException, utcnow
)
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def parse_role(value: Optional[str]) -> Role:
    try:
        return Role(value)
    except ValueError:
        logger.warning("Unknown role value in store", extra={"role": value})
        return LOWEST_ROLE


class SQLAlchemyPrincipalRepository(IPrincipalRepository):
    """Principal persistence over users, domains, scopes and admin_assignments."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_role(self, external_id: str) -> Optional[Role]:
        stmt = select(UserModel.role).where(UserModel.external_id == external_id)
        try:
            result = await self._session.execute(stmt)
            value = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Failed to read principal role", {"external_id": external_id, "error": str(e)}
            ) from e
        return parse_role(value) if value is not None else None

    async def _get_user(self, external_id: str) -> Optional[UserModel]:
        stmt = select(UserModel).where(UserModel.external_id == external_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def _primary_grant(self, user: UserModel) -> Optional[Grant]:
        if user.primary_domain_id is None:
            return None
        domain = await self._session.get(DomainModel, user.primary_domain_id)
        if domain is None:
            return None
        scope = None
        if user.primary_scope_id is not None:
            scope_model = await self._session.get(ScopeModel, user.primary_scope_id)
            scope = scope_model.name if scope_model else None
        return Grant(domain=domain.name, scope=scope)

    async def _secondary_grants(self, user: UserModel) -> List[Grant]:
        stmt = (
            select(DomainModel.name, ScopeModel.name)
            .select_from(AdminAssignmentModel)
            .join(DomainModel, AdminAssignmentModel.domain_id == DomainModel.id)
            .outerjoin(ScopeModel, AdminAssignmentModel.scope_id == ScopeModel.id)
            .where(AdminAssignmentModel.user_id == user.id)
            .order_by(AdminAssignmentModel.created_at.asc(), AdminAssignmentModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [Grant(domain=d, scope=s) for d, s in result.all()]

    async def _to_principal(self, user: UserModel) -> Principal:
        return Principal(
            id=str(user.id),
            external_id=user.external_id,
            role=parse_role(user.role),
            email=user.email,
            full_name=user.full_name,
            slack_user_id=user.slack_user_id,
            primary_grant=await self._primary_grant(user),
            secondary_grants=await self._secondary_grants(user),
        )

    async def get_principal(self, external_id: str) -> Optional[Principal]:
        try:
            user = await self._get_user(external_id)
            if user is None:
                return None
            return await self._to_principal(user)
        except SQLAlchemyError as e:
            raise RepositoryException(
                "Failed to read principal", {"external_id": external_id, "error": str(e)}
            ) from e

    async def get_partition_ids(
        self, domain: str, scope: Optional[str] = None
    ) -> Tuple[int, Optional[int]]:
        """Map domain/scope names to ids. Raises ValidationException if unknown."""
        result = await self._session.execute(
            select(DomainModel.id).where(DomainModel.name == domain)
        )
        domain_id = result.scalar_one_or_none()
        if domain_id is None:
            raise ValidationException(f"Unknown domain '{domain}'")
        if scope is None:
            return domain_id, None

        result = await self._session.execute(
            select(ScopeModel.id).where(
                ScopeModel.domain_id == domain_id, ScopeModel.name == scope
            )
        )
        scope_id = result.scalar_one_or_none()
        if scope_id is None:
            raise ValidationException(f"Unknown scope '{scope}' in domain '{domain}'")
        return domain_id, scope_id

    async def update_role(
        self,
        external_id: str,
        role: Role,
        domain: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> Principal:
        user = await self._get_user(external_id)
        if user is None:
            raise ResourceNotFoundException("Principal", external_id)

        user.role = role.value
        if domain is not None:
            user.primary_domain_id, user.primary_scope_id = await self.get_partition_ids(domain, scope)
        user.updated_at = utcnow()
        await self._session.flush()
        return await self._to_principal(user)

    async def clear_grants(self, external_id: str) -> None:
        user = await self._get_user(external_id)
        if user is None:
            raise ResourceNotFoundException("Principal", external_id)

        user.primary_domain_id = None
        user.primary_scope_id = None
        await self._session.execute(
            delete(AdminAssignmentModel).where(AdminAssignmentModel.user_id == user.id)
        )
        await self._session.flush()

    async def commit(self) -> None:
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to commit role change", {"error": str(e)}) from e
