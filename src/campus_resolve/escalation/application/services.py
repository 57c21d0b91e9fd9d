"""
Escalation Application Services
===============================

Rule management and ladder lookup.

Following SOLID principles:
- Single Responsibility: rule CRUD and ladder evaluation are separate services
- Dependency Inversion: both depend on repository interfaces
"""

import dataclasses
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from campus_resolve.access.application.services import IPrincipalRepository
from campus_resolve.config import ESCALATION_TARGET_ROLES, NotifyChannel
from campus_resolve.core import (
    DuplicateResourceException,
    ResourceNotFoundException,
    ValidationException,
)
from campus_resolve.escalation.domain import (
    Deadline,
    EscalationEvent,
    EscalationLadder,
    EscalationRule,
)
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.domain import TicketContext

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class IEscalationRuleRepository(ABC):
    """Interface for escalation rule data access."""

    @abstractmethod
    async def list_rules(
        self,
        domain_id: Optional[int] = None,
        scope_id: Optional[int] = None,
    ) -> List[EscalationRule]:
        """Rules filtered by domain and/or scope, ordered by partition then level."""

    @abstractmethod
    async def list_for_partition(self, domain_id: int, scope_id: Optional[int]) -> List[EscalationRule]:
        """Domain-wide rules plus, when ``scope_id`` is given, that scope's rules."""

    @abstractmethod
    async def get(self, rule_id: int) -> Optional[EscalationRule]:
        """Get rule by id."""

    @abstractmethod
    async def add(self, rule: EscalationRule) -> EscalationRule:
        """Persist a new rule."""

    @abstractmethod
    async def update(self, rule: EscalationRule) -> EscalationRule:
        """Persist changes to an existing rule."""

    @abstractmethod
    async def delete(self, rule_id: int) -> bool:
        """Delete a rule. Returns False when it did not exist."""

    @abstractmethod
    async def level_exists(
        self,
        domain_id: int,
        scope_id: Optional[int],
        level: int,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """Whether the partition already has a rule at ``level``."""

    @abstractmethod
    async def partition_exists(self, domain_id: int, scope_id: Optional[int]) -> bool:
        """Domain exists and, if given, the scope belongs to it."""


class IEscalationEventRepository(ABC):
    """Interface for the escalation event log."""

    @abstractmethod
    async def add(self, event: EscalationEvent) -> EscalationEvent:
        """Append an event."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: int) -> List[EscalationEvent]:
        """Events of a ticket, oldest first."""


# ========== Application Services ==========

class EscalationRuleService:
    """
    CRUD over escalation rules.

    Levels are unique per (domain, scope) partition. Assignees must hold an
    admin-level role.
    """

    def __init__(
        self,
        rules: IEscalationRuleRepository,
        principals: IPrincipalRepository,
        default_tat_hours: int = 48,
    ):
        self._rules = rules
        self._principals = principals
        self._default_tat_hours = default_tat_hours

    async def list_rules(
        self,
        domain_id: Optional[int] = None,
        scope_id: Optional[int] = None,
    ) -> List[EscalationRule]:
        return await self._rules.list_rules(domain_id, scope_id)

    async def get_rule(self, rule_id: int) -> EscalationRule:
        rule = await self._rules.get(rule_id)
        if rule is None:
            raise ResourceNotFoundException("EscalationRule", str(rule_id))
        return rule

    async def _validate_assignee(self, assignee: Optional[str]) -> None:
        if assignee is None:
            return
        role = await self._principals.get_role(assignee)
        if role is None:
            raise ValidationException("Unknown escalation assignee", {"assignee": assignee})
        if role not in ESCALATION_TARGET_ROLES:
            raise ValidationException(
                "Escalation assignee must be an admin or super_admin",
                {"assignee": assignee, "role": role.value}
            )

    async def _validate_partition(self, rule: EscalationRule, exclude_id: Optional[int] = None) -> None:
        if not await self._rules.partition_exists(rule.domain_id, rule.scope_id):
            raise ValidationException(
                "Unknown domain or scope",
                {"domain_id": rule.domain_id, "scope_id": rule.scope_id}
            )
        if await self._rules.level_exists(rule.domain_id, rule.scope_id, rule.level, exclude_id):
            raise DuplicateResourceException(
                f"Escalation level {rule.level} already exists for this domain and scope",
                {"domain_id": rule.domain_id, "scope_id": rule.scope_id, "level": rule.level}
            )

    @staticmethod
    def _build(**values: Any) -> EscalationRule:
        try:
            return EscalationRule(**values)
        except ValueError as e:
            raise ValidationException(str(e), {k: v for k, v in values.items() if k != "id"}) from e

    async def create_rule(
        self,
        domain_id: int,
        level: int,
        tat_hours: Optional[int] = None,
        notify_channel: NotifyChannel = NotifyChannel.SLACK,
        scope_id: Optional[int] = None,
        assignee: Optional[str] = None,
    ) -> EscalationRule:
        rule = self._build(
            domain_id=domain_id,
            scope_id=scope_id,
            level=level,
            tat_hours=tat_hours if tat_hours is not None else self._default_tat_hours,
            notify_channel=notify_channel,
            assignee=assignee,
        )
        await self._validate_partition(rule)
        await self._validate_assignee(assignee)
        rule = await self._rules.add(rule)
        logger.info(
            "Escalation rule created",
            extra={"rule_id": rule.id, "domain_id": domain_id, "scope_id": scope_id, "level": level}
        )
        return rule

    async def update_rule(self, rule_id: int, changes: Dict[str, Any]) -> EscalationRule:
        """
        Apply a partial update.

        Args:
            rule_id: Rule to update
            changes: Subset of level, tat_hours, notify_channel, scope_id, assignee

        Returns:
            The updated rule
        """
        current = await self.get_rule(rule_id)
        updated = self._build(**{**dataclasses.asdict(current), **changes})

        if (updated.level, updated.scope_id, updated.domain_id) != (
            current.level, current.scope_id, current.domain_id
        ):
            await self._validate_partition(updated, exclude_id=rule_id)
        if "assignee" in changes:
            await self._validate_assignee(updated.assignee)

        rule = await self._rules.update(updated)
        logger.info("Escalation rule updated", extra={"rule_id": rule_id, "fields": sorted(changes)})
        return rule

    async def delete_rule(self, rule_id: int) -> None:
        if not await self._rules.delete(rule_id):
            raise ResourceNotFoundException("EscalationRule", str(rule_id))
        logger.info("Escalation rule deleted", extra={"rule_id": rule_id})


class EscalationService:
    """Builds ladders for tickets and records escalation events."""

    def __init__(
        self,
        rules: IEscalationRuleRepository,
        events: IEscalationEventRepository,
        default_acknowledgement_hours: int = 24,
    ):
        self._rules = rules
        self._events = events
        self._default_acknowledgement_hours = default_acknowledgement_hours

    async def ladder_for(self, domain_id: Optional[int], scope_id: Optional[int]) -> EscalationLadder:
        rules = [] if domain_id is None else await self._rules.list_for_partition(domain_id, scope_id)
        return EscalationLadder(rules, self._default_acknowledgement_hours)

    async def ladder_for_context(self, context: TicketContext) -> EscalationLadder:
        return await self.ladder_for(context.domain_id, context.ticket.scope_id)

    async def next_deadline(self, context: TicketContext) -> Deadline:
        ladder = await self.ladder_for_context(context)
        return ladder.next_deadline(context.ticket)

    async def record(self, event: EscalationEvent) -> EscalationEvent:
        return await self._events.add(event)

    async def events_for(self, ticket_id: int) -> List[EscalationEvent]:
        return await self._events.list_for_ticket(ticket_id)
