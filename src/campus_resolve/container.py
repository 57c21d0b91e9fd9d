"""
Service Container
=================

Process-wide collaborators and the factories that bind request- or
job-scoped services to a database session.

Built once by the application lifespan (or the serverless entry point)
and stored on ``app.state.container``.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from campus_resolve.access.infrastructure import IdentityProviderClient, RoleCache
from campus_resolve.access.infrastructure.repositories import SQLAlchemyPrincipalRepository
from campus_resolve.assignment.application import SpocResolver
from campus_resolve.assignment.infrastructure.repositories import SQLAlchemyAssignmentRepository
from campus_resolve.config import Settings, settings as default_settings
from campus_resolve.escalation.application.services import EscalationRuleService, EscalationService
from campus_resolve.escalation.application.sweep import AutoEscalationService
from campus_resolve.escalation.infrastructure.repositories import (
    SQLAlchemyEscalationEventRepository,
    SQLAlchemyEscalationRuleRepository,
)
from campus_resolve.escalation.infrastructure.scheduler import EscalationScheduler
from campus_resolve.infrastructure.database import get_engine, get_session_context
from campus_resolve.infrastructure.database.probe import SchemaProbe
from campus_resolve.notifications.application.delivery import (
    DeliveryUnit,
    NotificationDelivery,
    TicketNotificationService,
)
from campus_resolve.notifications.application.reminders import ReminderSweepService
from campus_resolve.notifications.application.services import (
    NotificationConfigResolver,
    NotificationConfigService,
    NotificationDispatcher,
    NotificationSettingsService,
)
from campus_resolve.notifications.infrastructure.defaults import NotificationDefaultsManager
from campus_resolve.notifications.infrastructure.email import EmailClient
from campus_resolve.notifications.infrastructure.outbox import NotificationOutbox, OutboxTicketNotifier
from campus_resolve.notifications.infrastructure.repositories import (
    SQLAlchemyNotificationConfigRepository,
    SQLAlchemyNotificationSettingsRepository,
    SQLAlchemyRecipientDirectory,
)
from campus_resolve.notifications.infrastructure.slack import SlackClient
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.application.services import TicketService
from campus_resolve.tickets.infrastructure.repositories import SQLAlchemyTicketRepository

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Long-lived collaborators shared by every request."""

    settings: Settings
    role_cache: RoleCache
    schema_probe: SchemaProbe
    identity_provider: IdentityProviderClient
    defaults_manager: NotificationDefaultsManager
    slack_client: SlackClient
    email_client: EmailClient
    dispatcher: NotificationDispatcher
    outbox: Optional[NotificationOutbox] = None
    scheduler: Optional[EscalationScheduler] = None

    # ---------- session-bound factories ----------

    def ticket_notifier(self) -> OutboxTicketNotifier:
        return OutboxTicketNotifier(self.outbox)

    def escalation_service(self, session: AsyncSession) -> EscalationService:
        return EscalationService(
            SQLAlchemyEscalationRuleRepository(session),
            SQLAlchemyEscalationEventRepository(session),
            self.settings.default_acknowledgement_hours,
        )

    def escalation_rule_service(self, session: AsyncSession) -> EscalationRuleService:
        return EscalationRuleService(
            SQLAlchemyEscalationRuleRepository(session),
            SQLAlchemyPrincipalRepository(session),
            self.settings.default_rule_tat_hours,
        )

    def spoc_resolver(self, session: AsyncSession) -> SpocResolver:
        return SpocResolver.with_default_tiers(
            SQLAlchemyAssignmentRepository(session), self.schema_probe, savepoint=session.begin_nested
        )

    def ticket_service(self, session: AsyncSession) -> TicketService:
        return TicketService(
            SQLAlchemyTicketRepository(session),
            self.spoc_resolver(session),
            self.escalation_service(session),
            self.ticket_notifier(),
            session,
        )

    def auto_escalation(self, session: AsyncSession) -> AutoEscalationService:
        return AutoEscalationService(
            SQLAlchemyTicketRepository(session),
            self.escalation_service(session),
            self.ticket_notifier(),
            session,
            batch_size=self.settings.sweep_batch_size,
            extension_limit=self.settings.tat_extension_escalation_limit,
            reopen_limit=self.settings.reopen_escalation_limit,
        )

    def notification_resolver(self, session: AsyncSession) -> NotificationConfigResolver:
        return NotificationConfigResolver(
            SQLAlchemyNotificationConfigRepository(session),
            self.defaults_manager.get,
            settings_repository=SQLAlchemyNotificationSettingsRepository(session),
            probe=self.schema_probe,
            slack_available=self.slack_client.is_configured,
            email_available=self.email_client.is_configured,
            fallback_channel=self.settings.slack_default_channel,
            savepoint=session.begin_nested,
        )

    def ticket_notifications(
        self,
        session: AsyncSession,
        resolver: Optional[NotificationConfigResolver] = None,
    ) -> TicketNotificationService:
        return TicketNotificationService(
            resolver or self.notification_resolver(session),
            SQLAlchemyRecipientDirectory(session),
            self.dispatcher,
        )

    def reminder_sweep(self, session: AsyncSession) -> ReminderSweepService:
        resolver = self.notification_resolver(session)
        return ReminderSweepService(
            SQLAlchemyTicketRepository(session),
            resolver,
            self.ticket_notifications(session, resolver),
            threshold_hours=self.settings.reminder_threshold_hours,
            batch_size=self.settings.sweep_batch_size,
        )

    def notification_config_service(self, session: AsyncSession) -> NotificationConfigService:
        return NotificationConfigService(SQLAlchemyNotificationConfigRepository(session))

    def notification_settings_service(self, session: AsyncSession) -> NotificationSettingsService:
        return NotificationSettingsService(
            SQLAlchemyNotificationSettingsRepository(session), self.defaults_manager.get
        )

    @asynccontextmanager
    async def delivery_unit(self) -> AsyncIterator[DeliveryUnit]:
        """Fresh session and collaborators for one outbox job."""
        async with get_session_context() as session:
            yield DeliveryUnit(
                session=session,
                tickets=SQLAlchemyTicketRepository(session),
                notifications=self.ticket_notifications(session),
            )

    # ---------- background work ----------

    async def run_escalation_sweep(self) -> Dict[str, int]:
        async with get_session_context() as session:
            return await self.auto_escalation(session).run()

    async def start(self) -> None:
        """Start the outbox worker, the defaults file watcher and, when enabled, the scheduler."""
        self.defaults_manager.start_watching()
        self.outbox.start()
        if self.scheduler is not None:
            await self.scheduler.start(self.run_escalation_sweep)

    async def stop(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.outbox.stop()
        self.defaults_manager.stop_watching()
        await self.slack_client.close()
        await self.email_client.close()
        await self.identity_provider.close()

    def health(self) -> Dict[str, Any]:
        return {
            "slack": "configured" if self.slack_client.is_configured else "disabled",
            "slack_circuit": self.slack_client.circuit_state,
            "email": "configured" if self.email_client.is_configured else "disabled",
            "outbox": self.outbox.stats(),
            "scheduler": self.scheduler.is_running if self.scheduler else False,
            "schema": self.schema_probe.capabilities(),
        }


def build_container(
    app_settings: Optional[Settings] = None,
    engine_provider: Callable[[], AsyncEngine] = get_engine,
) -> ServiceContainer:
    """
    Wire the long-lived collaborators. Nothing is started here.

    Args:
        app_settings: Settings to build from, defaults to the environment
        engine_provider: Engine used by the schema probe

    Returns:
        ServiceContainer ready for ``start()``
    """
    app_settings = app_settings or default_settings

    defaults_manager = NotificationDefaultsManager()
    defaults_manager.load(app_settings.notification_defaults_path)

    slack_client = SlackClient(app_settings)
    email_client = EmailClient(app_settings)

    container = ServiceContainer(
        settings=app_settings,
        role_cache=RoleCache(app_settings.role_cache_ttl_seconds, app_settings.role_cache_max_size),
        schema_probe=SchemaProbe(engine_provider, app_settings.schema_probe_ttl_seconds),
        identity_provider=IdentityProviderClient(app_settings),
        defaults_manager=defaults_manager,
        slack_client=slack_client,
        email_client=email_client,
        dispatcher=NotificationDispatcher(slack_client, email_client),
    )
    container.outbox = NotificationOutbox(
        NotificationDelivery(container.delivery_unit), app_settings.outbox_max_size
    )
    if app_settings.escalation_sweep_interval > 0:
        container.scheduler = EscalationScheduler(app_settings.escalation_sweep_interval)

    logger.info(
        "Service container built",
        extra={
            "slack": slack_client.is_configured,
            "email": email_client.is_configured,
            "escalation_sweep_interval": app_settings.escalation_sweep_interval
        }
    )
    return container
