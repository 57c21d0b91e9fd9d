"""
Notification Infrastructure Repositories
========================================

SQLAlchemy implementations of notification configuration, settings and
recipient lookups.
"""

from typing import List, Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.infrastructure.models import ScopeModel, UserModel
from campus_resolve.core import ResourceNotFoundException
from campus_resolve.notifications.application.services import (
    INotificationConfigRepository,
    INotificationSettingsRepository,
    IRecipientDirectory,
)
from campus_resolve.notifications.domain import NotificationRule, NotificationSettings, Recipient
from campus_resolve.notifications.infrastructure.models import (
    NotificationConfigModel,
    NotificationSettingsModel,
)


def _matches(column, value):
    return column.is_(None) if value is None else column == value


class SQLAlchemyNotificationConfigRepository(INotificationConfigRepository):
    """Handles persistence of notification_config rows."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def _to_entity(self, model: NotificationConfigModel) -> NotificationRule:
        return NotificationRule(
            id=model.id,
            category_id=model.category_id,
            subcategory_id=model.subcategory_id,
            scope_id=model.scope_id,
            priority=model.priority,
            enable_slack=model.enable_slack,
            enable_email=model.enable_email,
            slack_channel=model.slack_channel,
            slack_cc_user_ids=tuple(model.slack_cc_user_ids or ()),
            email_recipients=tuple(model.email_recipients or ()),
            is_active=model.is_active,
        )

    def _apply(self, model: NotificationConfigModel, rule: NotificationRule) -> None:
        model.category_id = rule.category_id
        model.subcategory_id = rule.subcategory_id
        model.scope_id = rule.scope_id
        model.priority = rule.priority
        model.enable_slack = rule.enable_slack
        model.enable_email = rule.enable_email
        model.slack_channel = rule.slack_channel
        model.slack_cc_user_ids = list(rule.slack_cc_user_ids)
        model.email_recipients = list(rule.email_recipients)
        model.is_active = rule.is_active

    async def find_active(
        self,
        category_id: Optional[int],
        subcategory_id: Optional[int],
        scope_id: Optional[int],
    ) -> Optional[NotificationRule]:
        stmt = (
            select(NotificationConfigModel)
            .where(
                _matches(NotificationConfigModel.category_id, category_id),
                _matches(NotificationConfigModel.subcategory_id, subcategory_id),
                _matches(NotificationConfigModel.scope_id, scope_id),
                NotificationConfigModel.is_active.is_(True),
            )
            .order_by(NotificationConfigModel.priority.desc(), NotificationConfigModel.id.asc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def has_any_config(self, category_id: Optional[int], subcategory_id: Optional[int]) -> bool:
        global_row = and_(
            NotificationConfigModel.category_id.is_(None),
            NotificationConfigModel.subcategory_id.is_(None),
            NotificationConfigModel.scope_id.is_(None),
        )
        shapes = [global_row]
        if category_id is not None:
            shapes.append(and_(
                NotificationConfigModel.category_id == category_id,
                NotificationConfigModel.subcategory_id.is_(None),
            ))
            if subcategory_id is not None:
                shapes.append(and_(
                    NotificationConfigModel.category_id == category_id,
                    NotificationConfigModel.subcategory_id == subcategory_id,
                ))
        stmt = select(NotificationConfigModel.id).where(or_(*shapes)).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def find_scope_id_by_name(self, name: str) -> Optional[int]:
        stmt = select(ScopeModel.id).where(ScopeModel.name == name).order_by(ScopeModel.id).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_rules(self, category_id: Optional[int] = None) -> List[NotificationRule]:
        stmt = select(NotificationConfigModel)
        if category_id is not None:
            stmt = stmt.where(NotificationConfigModel.category_id == category_id)
        stmt = stmt.order_by(NotificationConfigModel.priority.desc(), NotificationConfigModel.id.asc())
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def get(self, rule_id: int) -> Optional[NotificationRule]:
        model = await self._session.get(NotificationConfigModel, rule_id)
        return self._to_entity(model) if model else None

    async def add(self, rule: NotificationRule) -> NotificationRule:
        model = NotificationConfigModel()
        self._apply(model, rule)
        self._session.add(model)
        await self._session.flush()
        return self._to_entity(model)

    async def update(self, rule: NotificationRule) -> NotificationRule:
        model = await self._session.get(NotificationConfigModel, rule.id)
        if model is None:
            raise ResourceNotFoundException("NotificationConfig", str(rule.id))
        self._apply(model, rule)
        await self._session.flush()
        return self._to_entity(model)

    async def delete(self, rule_id: int) -> bool:
        result = await self._session.execute(
            delete(NotificationConfigModel).where(NotificationConfigModel.id == rule_id)
        )
        return result.rowcount > 0


class SQLAlchemyNotificationSettingsRepository(INotificationSettingsRepository):
    """The notification_settings table holds at most one row."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _current(self) -> Optional[NotificationSettingsModel]:
        result = await self._session.execute(
            select(NotificationSettingsModel).order_by(NotificationSettingsModel.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def get(self) -> Optional[NotificationSettings]:
        model = await self._current()
        if model is None:
            return None
        slack_config = model.slack_config or {}
        return NotificationSettings(
            slack_enabled=model.slack_enabled,
            email_enabled=model.email_enabled,
            tat_reminders_enabled=model.tat_reminders_enabled,
            default_channel=slack_config.get("default_channel"),
            scope_channels=dict(slack_config.get("scope_channels") or {}),
            updated_by=model.updated_by,
        )

    async def save(self, settings: NotificationSettings) -> NotificationSettings:
        model = await self._current()
        if model is None:
            model = NotificationSettingsModel()
            self._session.add(model)
        model.slack_enabled = settings.slack_enabled
        model.email_enabled = settings.email_enabled
        model.tat_reminders_enabled = settings.tat_reminders_enabled
        model.slack_config = {
            "default_channel": settings.default_channel,
            "scope_channels": dict(settings.scope_channels),
        }
        model.updated_by = settings.updated_by
        await self._session.flush()
        return settings


class SQLAlchemyRecipientDirectory(IRecipientDirectory):
    """Reads contact details from the users table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_recipient(self, external_id: str) -> Optional[Recipient]:
        result = await self._session.execute(
            select(UserModel).where(UserModel.external_id == external_id)
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return Recipient(
            external_id=external_id,
            email=user.email,
            slack_user_id=user.slack_user_id,
            full_name=user.full_name,
        )

    async def find_by_slack_user(self, slack_user_id: str) -> Optional[Recipient]:
        """Principal linked to a Slack user id, used by interactive actions."""
        result = await self._session.execute(
            select(UserModel)
            .where(UserModel.slack_user_id == slack_user_id, UserModel.external_id.is_not(None))
            .limit(1)
        )
        user = result.scalar_one_or_none()
        if user is None:
            return None
        return Recipient(
            external_id=user.external_id,
            email=user.email,
            slack_user_id=user.slack_user_id,
            full_name=user.full_name,
        )
