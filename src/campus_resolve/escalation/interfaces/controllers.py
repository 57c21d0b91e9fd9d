"""
Escalation Controllers (API Routes)
===================================

Escalation rule administration and the auto-escalation cron endpoint.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.interfaces.dependencies import require_role
from campus_resolve.config import NotifyChannel, Role
from campus_resolve.container import ServiceContainer
from campus_resolve.escalation.application.dto import (
    AutoEscalationResponse,
    EscalationRuleCreateRequest,
    EscalationRuleResponse,
    EscalationRuleUpdateRequest,
)
from campus_resolve.escalation.application.services import EscalationRuleService
from campus_resolve.infrastructure.database import get_session
from campus_resolve.shared.api.dependencies import get_container
from campus_resolve.shared.api.security import verify_cron_auth

router = APIRouter(prefix="/escalation-rules", tags=["Escalation"])
cron_router = APIRouter(prefix="/cron", tags=["Cron"])


async def get_rule_service(
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> EscalationRuleService:
    return container.escalation_rule_service(session)


@router.get("", response_model=List[EscalationRuleResponse], summary="List escalation rules")
async def list_rules(
    domain_id: Optional[int] = Query(None, ge=1),
    scope_id: Optional[int] = Query(None, ge=1),
    _: str = Depends(require_role(Role.ADMIN)),
    rules: EscalationRuleService = Depends(get_rule_service),
):
    return [EscalationRuleResponse.from_rule(r) for r in await rules.list_rules(domain_id, scope_id)]


@router.get("/{rule_id}", response_model=EscalationRuleResponse, summary="Get an escalation rule")
async def get_rule(
    rule_id: int,
    _: str = Depends(require_role(Role.ADMIN)),
    rules: EscalationRuleService = Depends(get_rule_service),
):
    return EscalationRuleResponse.from_rule(await rules.get_rule(rule_id))


@router.post(
    "",
    response_model=EscalationRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a ladder level"
)
async def create_rule(
    request: EscalationRuleCreateRequest,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    rules: EscalationRuleService = Depends(get_rule_service),
):
    """
    Add a level to a domain's (or scope's) escalation ladder.

    Returns 409 when the level already exists for that domain and scope.
    """
    rule = await rules.create_rule(
        domain_id=request.domain_id,
        level=request.level,
        tat_hours=request.tat_hours,
        notify_channel=NotifyChannel(request.notify_channel),
        scope_id=request.scope_id,
        assignee=request.assignee,
    )
    return EscalationRuleResponse.from_rule(rule)


@router.patch("/{rule_id}", response_model=EscalationRuleResponse, summary="Update an escalation rule")
async def update_rule(
    rule_id: int,
    request: EscalationRuleUpdateRequest,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    rules: EscalationRuleService = Depends(get_rule_service),
):
    return EscalationRuleResponse.from_rule(await rules.update_rule(rule_id, request.changes()))


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an escalation rule")
async def delete_rule(
    rule_id: int,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    rules: EscalationRuleService = Depends(get_rule_service),
):
    await rules.delete_rule(rule_id)


@cron_router.get(
    "/auto-escalate",
    response_model=AutoEscalationResponse,
    dependencies=[Depends(verify_cron_auth)],
    summary="Run the auto-escalation sweep"
)
async def auto_escalate(
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
):
    """Advance every ticket whose active deadline has lapsed by one level."""
    summary = await container.auto_escalation(session).run()
    return AutoEscalationResponse(**summary)


escalation_router = router
escalation_cron_router = cron_router
