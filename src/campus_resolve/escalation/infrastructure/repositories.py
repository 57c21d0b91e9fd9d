"""
Escalation Infrastructure Repositories
======================================

SQLAlchemy implementations of the escalation rule and event repositories.
"""

from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.infrastructure.models import DomainModel, ScopeModel, UserModel
from campus_resolve.config import EscalationEventKind, NotifyChannel
from campus_resolve.core import ResourceNotFoundException, as_utc, utcnow
from campus_resolve.escalation.application.services import (
    IEscalationEventRepository,
    IEscalationRuleRepository,
)
from campus_resolve.escalation.domain import EscalationEvent, EscalationRule
from campus_resolve.escalation.infrastructure.models import (
    EscalationRuleModel,
    TicketEscalationEventModel,
)


class SQLAlchemyEscalationRuleRepository(IEscalationRuleRepository):
    """Escalation rules stored by users.id, exposed by external id."""

    def __init__(self, session: AsyncSession):
        self._session = session

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

    @staticmethod
    def _to_entity(model: EscalationRuleModel, external_ids: Dict[UUID, str]) -> EscalationRule:
        return EscalationRule(
            id=model.id,
            domain_id=model.domain_id,
            scope_id=model.scope_id,
            level=model.level,
            tat_hours=model.tat_hours,
            notify_channel=NotifyChannel(model.notify_channel),
            assignee=external_ids.get(model.assignee_id),
        )

    async def _to_entities(self, models: List[EscalationRuleModel]) -> List[EscalationRule]:
        external_ids = await self._external_ids(m.assignee_id for m in models)
        return [self._to_entity(m, external_ids) for m in models]

    async def _apply(self, model: EscalationRuleModel, rule: EscalationRule) -> None:
        model.domain_id = rule.domain_id
        model.scope_id = rule.scope_id
        model.level = rule.level
        model.tat_hours = rule.tat_hours
        model.notify_channel = NotifyChannel(rule.notify_channel).value
        model.assignee_id = await self._user_id(rule.assignee)

    async def list_rules(
        self,
        domain_id: Optional[int] = None,
        scope_id: Optional[int] = None,
    ) -> List[EscalationRule]:
        stmt = select(EscalationRuleModel)
        if domain_id is not None:
            stmt = stmt.where(EscalationRuleModel.domain_id == domain_id)
        if scope_id is not None:
            stmt = stmt.where(EscalationRuleModel.scope_id == scope_id)
        stmt = stmt.order_by(
            EscalationRuleModel.domain_id,
            EscalationRuleModel.scope_id,
            EscalationRuleModel.level,
        )
        result = await self._session.execute(stmt)
        return await self._to_entities(list(result.scalars().all()))

    async def list_for_partition(self, domain_id: int, scope_id: Optional[int]) -> List[EscalationRule]:
        scope_clause = EscalationRuleModel.scope_id.is_(None)
        if scope_id is not None:
            scope_clause = or_(scope_clause, EscalationRuleModel.scope_id == scope_id)
        stmt = (
            select(EscalationRuleModel)
            .where(EscalationRuleModel.domain_id == domain_id, scope_clause)
            .order_by(EscalationRuleModel.level.asc())
        )
        result = await self._session.execute(stmt)
        return await self._to_entities(list(result.scalars().all()))

    async def get(self, rule_id: int) -> Optional[EscalationRule]:
        model = await self._session.get(EscalationRuleModel, rule_id)
        if model is None:
            return None
        return (await self._to_entities([model]))[0]

    async def add(self, rule: EscalationRule) -> EscalationRule:
        model = EscalationRuleModel()
        await self._apply(model, rule)
        self._session.add(model)
        await self._session.flush()
        return (await self._to_entities([model]))[0]

    async def update(self, rule: EscalationRule) -> EscalationRule:
        model = await self._session.get(EscalationRuleModel, rule.id)
        if model is None:
            raise ResourceNotFoundException("EscalationRule", str(rule.id))
        await self._apply(model, rule)
        model.updated_at = utcnow()
        await self._session.flush()
        return (await self._to_entities([model]))[0]

    async def delete(self, rule_id: int) -> bool:
        result = await self._session.execute(
            delete(EscalationRuleModel).where(EscalationRuleModel.id == rule_id)
        )
        return result.rowcount > 0

    async def level_exists(
        self,
        domain_id: int,
        scope_id: Optional[int],
        level: int,
        exclude_id: Optional[int] = None,
    ) -> bool:
        stmt = select(EscalationRuleModel.id).where(
            EscalationRuleModel.domain_id == domain_id,
            EscalationRuleModel.level == level,
        )
        if scope_id is None:
            stmt = stmt.where(EscalationRuleModel.scope_id.is_(None))
        else:
            stmt = stmt.where(EscalationRuleModel.scope_id == scope_id)
        if exclude_id is not None:
            stmt = stmt.where(EscalationRuleModel.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def partition_exists(self, domain_id: int, scope_id: Optional[int]) -> bool:
        if await self._session.get(DomainModel, domain_id) is None:
            return False
        if scope_id is None:
            return True
        scope = await self._session.get(ScopeModel, scope_id)
        return scope is not None and scope.domain_id == domain_id


class SQLAlchemyEscalationEventRepository(IEscalationEventRepository):

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: TicketEscalationEventModel) -> EscalationEvent:
        return EscalationEvent(
            id=model.id,
            ticket_id=model.ticket_id,
            kind=EscalationEventKind(model.kind),
            from_level=model.from_level,
            to_level=model.to_level,
            occurred_at=as_utc(model.occurred_at),
            assignee=model.assignee,
            channel=NotifyChannel(model.channel) if model.channel else None,
            due_at=as_utc(model.due_at),
            reason=model.reason,
            actor=model.actor,
        )

    async def add(self, event: EscalationEvent) -> EscalationEvent:
        model = TicketEscalationEventModel(
            ticket_id=event.ticket_id,
            kind=event.kind.value,
            from_level=event.from_level,
            to_level=event.to_level,
            assignee=event.assignee,
            channel=event.channel.value if event.channel else None,
            due_at=event.due_at,
            reason=event.reason,
            actor=event.actor,
            occurred_at=event.occurred_at,
        )
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def list_for_ticket(self, ticket_id: int) -> List[EscalationEvent]:
        stmt = (
            select(TicketEscalationEventModel)
            .where(TicketEscalationEventModel.ticket_id == ticket_id)
            .order_by(TicketEscalationEventModel.occurred_at.asc(), TicketEscalationEventModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]
