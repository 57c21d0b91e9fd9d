"""
Assignment Infrastructure Repositories
======================================

SQLAlchemy queries behind each SPOC resolution tier. Every query joins
``users`` so that rows pointing at a principal without an external id
yield nothing.
"""

from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.infrastructure.models import (
    AdminAssignmentModel, DomainModel, ScopeModel, UserModel
)
from campus_resolve.assignment.application.services import IAssignmentRepository
from campus_resolve.config import STAFF_ROLES
from campus_resolve.tickets.infrastructure.models import (
    CategoryAssignmentModel, CategoryFieldModel, CategoryModel, SubcategoryModel
)

_STAFF_ROLE_VALUES = [r.value for r in STAFF_ROLES]


class SQLAlchemyAssignmentRepository(IAssignmentRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _first_external_id(self, stmt) -> Optional[str]:
        result = await self._session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def find_field_assignee(self, subcategory_id: int, field_slugs: Sequence[str]) -> Optional[str]:
        stmt = (
            select(UserModel.external_id)
            .select_from(CategoryFieldModel)
            .join(UserModel, CategoryFieldModel.assigned_admin_id == UserModel.id)
            .where(
                CategoryFieldModel.subcategory_id == subcategory_id,
                CategoryFieldModel.slug.in_(list(field_slugs)),
                CategoryFieldModel.is_active.is_(True),
                UserModel.external_id.is_not(None),
            )
            .order_by(CategoryFieldModel.id.asc())
        )
        return await self._first_external_id(stmt)

    async def find_domain_scope_candidates(self, domain: str, scope: Optional[str]) -> List[str]:
        primary = (
            select(UserModel.external_id)
            .join(DomainModel, UserModel.primary_domain_id == DomainModel.id)
            .outerjoin(ScopeModel, UserModel.primary_scope_id == ScopeModel.id)
            .where(
                DomainModel.name == domain,
                UserModel.role.in_(_STAFF_ROLE_VALUES),
                UserModel.external_id.is_not(None),
            )
            .order_by(UserModel.created_at.asc(), UserModel.id.asc())
        )
        secondary = (
            select(UserModel.external_id)
            .select_from(AdminAssignmentModel)
            .join(UserModel, AdminAssignmentModel.user_id == UserModel.id)
            .join(DomainModel, AdminAssignmentModel.domain_id == DomainModel.id)
            .outerjoin(ScopeModel, AdminAssignmentModel.scope_id == ScopeModel.id)
            .where(
                DomainModel.name == domain,
                UserModel.role.in_(_STAFF_ROLE_VALUES),
                UserModel.external_id.is_not(None),
            )
            .order_by(AdminAssignmentModel.created_at.asc(), AdminAssignmentModel.id.asc())
        )
        if scope is not None:
            primary = primary.where(ScopeModel.name == scope)
            secondary = secondary.where(ScopeModel.name == scope)
        else:
            primary = primary.where(UserModel.primary_scope_id.is_(None))
            secondary = secondary.where(AdminAssignmentModel.scope_id.is_(None))

        candidates: List[str] = []
        for stmt in (primary, secondary):
            result = await self._session.execute(stmt)
            for external_id in result.scalars().all():
                if external_id not in candidates:
                    candidates.append(external_id)
        return candidates

    async def find_subcategory_assignee(self, subcategory_id: int) -> Optional[str]:
        stmt = (
            select(UserModel.external_id)
            .select_from(SubcategoryModel)
            .join(UserModel, SubcategoryModel.assigned_admin_id == UserModel.id)
            .where(SubcategoryModel.id == subcategory_id)
        )
        return await self._first_external_id(stmt)

    async def find_category_assignee(self, category_id: int) -> Optional[str]:
        stmt = (
            select(UserModel.external_id)
            .select_from(CategoryAssignmentModel)
            .join(UserModel, CategoryAssignmentModel.user_id == UserModel.id)
            .where(
                CategoryAssignmentModel.category_id == category_id,
                UserModel.external_id.is_not(None),
            )
            .order_by(CategoryAssignmentModel.created_at.asc(), CategoryAssignmentModel.id.asc())
        )
        return await self._first_external_id(stmt)

    async def find_category_default_assignee(self, category_id: int) -> Optional[str]:
        stmt = (
            select(UserModel.external_id)
            .select_from(CategoryModel)
            .join(UserModel, CategoryModel.default_admin_id == UserModel.id)
            .where(CategoryModel.id == category_id)
        )
        return await self._first_external_id(stmt)
