"""
Ticket Infrastructure Repositories
==================================

SQLAlchemy implementation of the ticket repository. Principals are stored
as ``users.id`` foreign keys and exposed to the domain by external id.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.infrastructure.models import DomainModel, ScopeModel, UserModel
from campus_resolve.config import TicketStatus, ACTIVE_STATUSES
from campus_resolve.core import ResourceNotFoundException, as_utc
from campus_resolve.tickets.application.services import ITicketRepository
from campus_resolve.tickets.domain import Ticket, TicketContext
from campus_resolve.tickets.infrastructure.models import (
    CategoryModel, SubcategoryModel, TicketModel
)


class SQLAlchemyTicketRepository(ITicketRepository):
    """Handles persistence of Ticket entities using async SQLAlchemy."""

    def __init__(self, session: AsyncSession):
        self._session = session

    # ---------- identity mapping ----------

    async def _external_ids(self, user_ids: Iterable[Optional[UUID]]) -> Dict[UUID, str]:
        wanted = {u for u in user_ids if u is not None}
        if not wanted:
            return {}
        result = await self._session.execute(
            select(UserModel.id, UserModel.external_id).where(UserModel.id.in_(wanted))
        )
        return {user_id: external_id for user_id, external_id in result.all()}

    async def _user_id(self, external_id: Optional[str]) -> Optional[UUID]:
        if external_id is None:
            return None
        result = await self._session.execute(
            select(UserModel.id).where(UserModel.external_id == external_id)
        )
        user_id = result.scalar_one_or_none()
        if user_id is None:
            raise ResourceNotFoundException("Principal", external_id)
        return user_id

    def _to_entity(self, model: TicketModel, external_ids: Dict[UUID, str]) -> Ticket:
        return Ticket(
            id=model.id,
            created_by=external_ids.get(model.created_by, str(model.created_by)),
            status=TicketStatus(model.status),
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
            category_id=model.category_id,
            subcategory_id=model.subcategory_id,
            scope_id=model.scope_id,
            location=model.location,
            description=model.description,
            assigned_to=external_ids.get(model.assigned_to),
            escalation_level=model.escalation_level,
            acknowledged_at=as_utc(model.acknowledged_at),
            acknowledged_by=external_ids.get(model.acknowledged_by),
            resolved_at=as_utc(model.resolved_at),
            acknowledgement_due_at=as_utc(model.acknowledgement_due_at),
            resolution_due_at=as_utc(model.resolution_due_at),
            metadata=dict(model.ticket_metadata or {}),
        )

    async def _to_entities(self, models: List[TicketModel]) -> List[Ticket]:
        user_ids = []
        for m in models:
            user_ids.extend([m.created_by, m.assigned_to, m.acknowledged_by])
        external_ids = await self._external_ids(user_ids)
        return [self._to_entity(m, external_ids) for m in models]

    async def _apply(self, model: TicketModel, ticket: Ticket) -> None:
        model.description = ticket.description
        model.location = ticket.location
        model.status = ticket.status.value
        model.category_id = ticket.category_id
        model.subcategory_id = ticket.subcategory_id
        model.scope_id = ticket.scope_id
        if model.created_by is None:
            model.created_by = await self._user_id(ticket.created_by)
        model.assigned_to = await self._user_id(ticket.assigned_to)
        model.acknowledged_by = await self._user_id(ticket.acknowledged_by)
        model.escalation_level = ticket.escalation_level
        model.created_at = ticket.created_at
        model.updated_at = ticket.updated_at
        model.acknowledged_at = ticket.acknowledged_at
        model.resolved_at = ticket.resolved_at
        model.acknowledgement_due_at = ticket.acknowledgement_due_at
        model.resolution_due_at = ticket.resolution_due_at
        model.ticket_metadata = dict(ticket.metadata)

    # ---------- ITicketRepository ----------

    async def get(self, ticket_id: int) -> Optional[Ticket]:
        model = await self._session.get(TicketModel, ticket_id)
        if model is None:
            return None
        return (await self._to_entities([model]))[0]

    async def add(self, ticket: Ticket) -> Ticket:
        model = TicketModel()
        await self._apply(model, ticket)
        self._session.add(model)
        await self._session.flush()
        ticket.id = model.id
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        model = await self._session.get(TicketModel, ticket.id)
        if model is None:
            raise ResourceNotFoundException("Ticket", str(ticket.id))
        await self._apply(model, ticket)
        await self._session.flush()
        return ticket

    async def build_context(self, ticket: Ticket) -> TicketContext:
        category_name = subcategory_name = domain_name = scope_name = None
        domain_id = None
        default_assignee = None

        if ticket.category_id is not None:
            category = await self._session.get(CategoryModel, ticket.category_id)
            if category is not None:
                category_name = category.name
                domain_id = category.domain_id
                if category.default_admin_id is not None:
                    default_assignee = (
                        await self._external_ids([category.default_admin_id])
                    ).get(category.default_admin_id)
        if ticket.subcategory_id is not None:
            subcategory = await self._session.get(SubcategoryModel, ticket.subcategory_id)
            subcategory_name = subcategory.name if subcategory else None
        if domain_id is not None:
            domain = await self._session.get(DomainModel, domain_id)
            domain_name = domain.name if domain else None
        if ticket.scope_id is not None:
            scope = await self._session.get(ScopeModel, ticket.scope_id)
            scope_name = scope.name if scope else None

        return TicketContext(
            ticket=ticket,
            category_name=category_name,
            subcategory_name=subcategory_name,
            domain_id=domain_id,
            domain_name=domain_name or category_name,
            scope_name=scope_name,
            category_default_assignee=default_assignee,
        )

    async def get_context(self, ticket_id: int) -> Optional[TicketContext]:
        ticket = await self.get(ticket_id)
        if ticket is None:
            return None
        return await self.build_context(ticket)

    async def list_active(
        self,
        limit: int = 200,
        after: Optional[Tuple[datetime, int]] = None,
        assigned_only: bool = False,
    ) -> List[TicketContext]:
        stmt = select(TicketModel).where(
            TicketModel.status.in_([s.value for s in ACTIVE_STATUSES])
        )
        if assigned_only:
            stmt = stmt.where(TicketModel.assigned_to.is_not(None))
        if after is not None:
            created_at, ticket_id = after
            stmt = stmt.where(or_(
                TicketModel.created_at > created_at,
                and_(TicketModel.created_at == created_at, TicketModel.id > ticket_id),
            ))
        stmt = stmt.order_by(TicketModel.created_at.asc(), TicketModel.id.asc()).limit(limit)
        result = await self._session.execute(stmt)
        tickets = await self._to_entities(list(result.scalars().all()))
        return [await self.build_context(t) for t in tickets]

    async def find_scope_id(self, domain_id: Optional[int], location: Optional[str]) -> Optional[int]:
        """Scope whose name equals the free-text location, within the domain if known."""
        if not location:
            return None
        stmt = select(ScopeModel.id).where(ScopeModel.name == location)
        if domain_id is not None:
            stmt = stmt.where(ScopeModel.domain_id == domain_id)
        result = await self._session.execute(stmt.order_by(ScopeModel.id).limit(1))
        return result.scalar_one_or_none()

    async def category_exists(self, category_id: int, subcategory_id: Optional[int] = None) -> bool:
        category = await self._session.get(CategoryModel, category_id)
        if category is None or not category.is_active:
            return False
        if subcategory_id is None:
            return True
        subcategory = await self._session.get(SubcategoryModel, subcategory_id)
        return subcategory is not None and subcategory.category_id == category_id
