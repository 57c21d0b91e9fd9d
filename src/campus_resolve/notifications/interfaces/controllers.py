"""
Notification Controllers (API Routes)
=====================================

Notification configuration and settings administration, and the TAT
reminder cron endpoint.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.interfaces.dependencies import require_role
from campus_resolve.config import Role
from campus_resolve.container import ServiceContainer
from campus_resolve.infrastructure.database import get_session
from campus_resolve.notifications.application.dto import (
    NotificationConfigRequest,
    NotificationConfigResponse,
    NotificationConfigUpdateRequest,
    NotificationSettingsResponse,
    NotificationSettingsUpdateRequest,
    ResolvedConfigResponse,
)
from campus_resolve.notifications.application.services import (
    NotificationConfigService,
    NotificationSettingsService,
)
from campus_resolve.shared.api.dependencies import get_container
from campus_resolve.shared.api.security import verify_cron_auth

config_router = APIRouter(prefix="/notification-config", tags=["Notifications"])
settings_router = APIRouter(prefix="/notification-settings", tags=["Notifications"])
cron_router = APIRouter(prefix="/cron", tags=["Cron"])


# ========== Dependencies ==========

async def get_config_service(
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> NotificationConfigService:
    return container.notification_config_service(session)


async def get_settings_service(
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> NotificationSettingsService:
    return container.notification_settings_service(session)


# ========== Configuration rows ==========

@config_router.get("", response_model=List[NotificationConfigResponse], summary="List notification config rows")
async def list_configs(
    category_id: Optional[int] = Query(None, ge=1),
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    configs: NotificationConfigService = Depends(get_config_service),
):
    return [NotificationConfigResponse.from_rule(r) for r in await configs.list_rules(category_id)]


@config_router.get("/resolve", response_model=ResolvedConfigResponse, summary="Preview resolution")
async def resolve_config(
    category_id: Optional[int] = Query(None, ge=1),
    subcategory_id: Optional[int] = Query(None, ge=1),
    scope_id: Optional[int] = Query(None, ge=1),
    location: Optional[str] = Query(None),
    _: str = Depends(require_role(Role.ADMIN)),
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
):
    """Configuration a ticket with these attributes would resolve to, and which tier supplied it."""
    resolver = container.notification_resolver(session)
    config = await resolver.resolve(category_id, subcategory_id, scope_id, location)
    return ResolvedConfigResponse.from_config(config)


@config_router.get("/{config_id}", response_model=NotificationConfigResponse, summary="Get a config row")
async def get_config(
    config_id: int,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    configs: NotificationConfigService = Depends(get_config_service),
):
    return NotificationConfigResponse.from_rule(await configs.get_rule(config_id))


@config_router.post(
    "",
    response_model=NotificationConfigResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a config row"
)
async def create_config(
    request: NotificationConfigRequest,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    configs: NotificationConfigService = Depends(get_config_service),
):
    return NotificationConfigResponse.from_rule(await configs.create_rule(request.to_rule()))


@config_router.patch("/{config_id}", response_model=NotificationConfigResponse, summary="Update a config row")
async def update_config(
    config_id: int,
    request: NotificationConfigUpdateRequest,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    configs: NotificationConfigService = Depends(get_config_service),
):
    return NotificationConfigResponse.from_rule(await configs.update_rule(config_id, request.changes()))


@config_router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a config row")
async def delete_config(
    config_id: int,
    _: str = Depends(require_role(Role.SUPER_ADMIN)),
    configs: NotificationConfigService = Depends(get_config_service),
):
    await configs.delete_rule(config_id)


# ========== Settings ==========

@settings_router.get("", response_model=NotificationSettingsResponse, summary="Get notification settings")
async def get_notification_settings(
    _: str = Depends(require_role(Role.ADMIN)),
    settings_service: NotificationSettingsService = Depends(get_settings_service),
):
    return NotificationSettingsResponse.from_settings(await settings_service.get())


@settings_router.put("", response_model=NotificationSettingsResponse, summary="Update notification settings")
async def update_notification_settings(
    request: NotificationSettingsUpdateRequest,
    principal_id: str = Depends(require_role(Role.SUPER_ADMIN)),
    settings_service: NotificationSettingsService = Depends(get_settings_service),
):
    """
    Global switches for Slack, email and TAT reminders, plus channel overrides.

    Turning a channel off here silences it regardless of configuration rows.
    """
    updated = await settings_service.update(request.changes(), updated_by=principal_id)
    return NotificationSettingsResponse.from_settings(updated)


# ========== Cron ==========

@cron_router.get(
    "/remind-spocs",
    dependencies=[Depends(verify_cron_auth)],
    summary="Send TAT reminders"
)
async def remind_spocs(
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
):
    """
    Remind assignees of unacknowledged or overdue tickets.

    Returns `remindersSent`, the reminded tickets with the channels that
    delivered, and per-ticket errors.
    """
    return await container.reminder_sweep(session).run()


notification_config_router = config_router
notification_settings_router = settings_router
notification_cron_router = cron_router
