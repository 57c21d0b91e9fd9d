"""
Notification Application Services
=================================

Configuration resolution and fan-out delivery.

Resolution walks four specificity tiers, most specific first, taking the
highest-priority active row of the first tier that has one:

1. category + subcategory (no scope)
2. scope only
3. category only
4. global (nothing set)

When no tier answers, the deployment defaults apply: the YAML file, with
the administrator settings row layered on top. A missing table or a
failing query also falls back to the defaults; lookups run inside a savepoint
so the failure does not abort the caller's transaction.

Delivery isolates channels from each other and from the caller: a Slack
failure does not stop the email, and nothing raises out of ``notify``.
"""

import dataclasses
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Sequence

from campus_resolve.config import NotifyChannel, OptionalSurface
from campus_resolve.core import ResourceNotFoundException, ValidationException
from campus_resolve.infrastructure.database import SavepointFactory, no_savepoint
from campus_resolve.infrastructure.database.probe import SchemaProbe
from campus_resolve.notifications.domain import (
    ConfigTier,
    DispatchResult,
    NotificationConfig,
    NotificationDefaults,
    NotificationMessage,
    NotificationRule,
    NotificationSettings,
    Recipient,
)
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.domain import TicketContext

logger = get_logger(__name__)


# ========== Repository Interfaces ==========

class INotificationConfigRepository(ABC):
    """Interface for ``notification_config`` rows."""

    @abstractmethod
    async def find_active(
        self,
        category_id: Optional[int],
        subcategory_id: Optional[int],
        scope_id: Optional[int],
    ) -> Optional[NotificationRule]:
        """
        Highest-priority active row with exactly this shape.

        None arguments match NULL columns.
        """

    @abstractmethod
    async def has_any_config(self, category_id: Optional[int], subcategory_id: Optional[int]) -> bool:
        """Whether any row, active or not, covers the category/subcategory."""

    @abstractmethod
    async def find_scope_id_by_name(self, name: str) -> Optional[int]:
        """Scope whose name equals ``name`` exactly."""

    @abstractmethod
    async def list_rules(self, category_id: Optional[int] = None) -> List[NotificationRule]:
        """All rows, optionally for one category."""

    @abstractmethod
    async def get(self, rule_id: int) -> Optional[NotificationRule]:
        """Get row by id."""

    @abstractmethod
    async def add(self, rule: NotificationRule) -> NotificationRule:
        """Persist a new row."""

    @abstractmethod
    async def update(self, rule: NotificationRule) -> NotificationRule:
        """Persist changes to a row."""

    @abstractmethod
    async def delete(self, rule_id: int) -> bool:
        """Delete a row. Returns False when it did not exist."""


class INotificationSettingsRepository(ABC):
    """Interface for the settings row."""

    @abstractmethod
    async def get(self) -> Optional[NotificationSettings]:
        """The settings row, or None before it is first saved."""

    @abstractmethod
    async def save(self, settings: NotificationSettings) -> NotificationSettings:
        """Create or replace the settings row."""


class IRecipientDirectory(ABC):
    """Contact details of principals."""

    @abstractmethod
    async def get_recipient(self, external_id: str) -> Optional[Recipient]:
        """Email and Slack id of a principal."""

    @abstractmethod
    async def find_by_slack_user(self, slack_user_id: str) -> Optional[Recipient]:
        """Principal linked to a Slack user id."""


class ISlackGateway(ABC):
    """Outbound Slack messaging."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether messages can be sent at all."""

    @abstractmethod
    async def post_message(
        self,
        channel: str,
        text: str,
        thread_ts: Optional[str] = None,
        mentions: Sequence[str] = (),
        ticket_id: Optional[int] = None,
    ) -> Optional[str]:
        """Post a message. Returns its ts, or None when it was not delivered."""


class IEmailGateway(ABC):
    """Outbound transactional email."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether mail can be sent at all."""

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict:
        """Send one email. Returns a dict with at least ``success``."""


# ========== Configuration Resolution ==========

class NotificationConfigResolver:
    """
    Resolves which channels and recipients apply to a ticket.

    Request scoped: the settings row is read at most once per instance.
    """

    def __init__(
        self,
        repository: INotificationConfigRepository,
        defaults_provider: Callable[[], NotificationDefaults],
        settings_repository: Optional[INotificationSettingsRepository] = None,
        probe: Optional[SchemaProbe] = None,
        slack_available: bool = True,
        email_available: bool = True,
        fallback_channel: str = "#tickets",
        savepoint: SavepointFactory = no_savepoint,
    ):
        self._repository = repository
        self._savepoint = savepoint
        self._defaults_provider = defaults_provider
        self._settings_repository = settings_repository
        self._probe = probe
        self._slack_available = slack_available
        self._email_available = email_available
        self._fallback_channel = fallback_channel
        self._settings: Optional[NotificationSettings] = None
        self._settings_loaded = False

    # ---------- defaults ----------

    async def settings(self) -> NotificationSettings:
        """The settings row, or an all-defaults instance."""
        if not self._settings_loaded:
            self._settings_loaded = True
            if self._settings_repository is not None:
                try:
                    async with self._savepoint():
                        self._settings = await self._settings_repository.get()
                except Exception as e:
                    logger.warning("Failed to read notification settings, using defaults", extra={"error": str(e)})
        return self._settings or NotificationSettings()

    def defaults_config(self) -> NotificationConfig:
        defaults = self._defaults_provider()
        return NotificationConfig(
            enable_slack=defaults.enable_slack,
            enable_email=defaults.enable_email,
            slack_channel=None,
            slack_cc_user_ids=tuple(defaults.slack_cc_user_ids),
            email_recipients=tuple(defaults.email_recipients),
            source=ConfigTier.DEFAULTS,
        )

    async def _table_available(self) -> bool:
        if self._probe is None:
            return True
        return await self._probe.exists(OptionalSurface.NOTIFICATION_CONFIG)

    # ---------- tiers ----------

    async def resolve(
        self,
        category_id: Optional[int] = None,
        subcategory_id: Optional[int] = None,
        scope_id: Optional[int] = None,
        ticket_location: Optional[str] = None,
    ) -> NotificationConfig:
        """
        Configuration for a category/subcategory/scope combination.

        Args:
            category_id: Ticket category
            subcategory_id: Ticket subcategory
            scope_id: Ticket scope
            ticket_location: Free-text location, matched to a scope by exact
                name when ``scope_id`` is not given

        Returns:
            The first matching row's settings, or the deployment defaults
        """
        if not await self._table_available():
            return self.defaults_config()

        try:
            async with self._savepoint():
                if scope_id is None and ticket_location:
                    scope_id = await self._repository.find_scope_id_by_name(ticket_location)

                tiers = []
                if category_id is not None and subcategory_id is not None:
                    tiers.append((ConfigTier.SUBCATEGORY, (category_id, subcategory_id, None)))
                if scope_id is not None:
                    tiers.append((ConfigTier.SCOPE, (None, None, scope_id)))
                if category_id is not None:
                    tiers.append((ConfigTier.CATEGORY, (category_id, None, None)))
                tiers.append((ConfigTier.GLOBAL, (None, None, None)))

                for tier, shape in tiers:
                    rule = await self._repository.find_active(*shape)
                    if rule is not None:
                        return NotificationConfig.from_rule(rule, tier)
        except Exception as e:
            logger.warning(
                "Notification config lookup failed, using defaults",
                extra={"category_id": category_id, "subcategory_id": subcategory_id, "error": str(e)}
            )
        return self.defaults_config()

    # ---------- channel decisions ----------

    async def _has_any_config(self, category_id: Optional[int], subcategory_id: Optional[int]) -> bool:
        if not await self._table_available():
            return False
        try:
            async with self._savepoint():
                return await self._repository.has_any_config(category_id, subcategory_id)
        except Exception as e:
            logger.warning("Notification config existence check failed", extra={"error": str(e)})
            return False

    async def should_send_slack(
        self,
        category_name: Optional[str],
        category_id: Optional[int],
        subcategory_id: Optional[int],
        config: Optional[NotificationConfig] = None,
    ) -> bool:
        """
        Slack is sent when the client is configured, the settings allow it,
        the resolved config enables it and, for categories with no config
        row at all, the category is on the legacy allow-list.
        """
        if not self._slack_available:
            return False
        if not (await self.settings()).slack_enabled:
            return False
        config = config or await self.resolve(category_id, subcategory_id)
        if not config.enable_slack:
            return False
        if not await self._has_any_config(category_id, subcategory_id):
            return category_name in self._defaults_provider().legacy_slack_categories
        return True

    async def should_send_email(
        self,
        category_id: Optional[int],
        subcategory_id: Optional[int],
        config: Optional[NotificationConfig] = None,
    ) -> bool:
        if not self._email_available:
            return False
        if not (await self.settings()).email_enabled:
            return False
        config = config or await self.resolve(category_id, subcategory_id)
        return config.enable_email

    async def slack_channel_for(
        self,
        config: NotificationConfig,
        domain_name: Optional[str],
        scope_name: Optional[str],
    ) -> str:
        """
        Channel for a ticket: the config row's channel, then a per-scope
        override, then the domain's channel, then the default channel.
        """
        if config.slack_channel:
            return config.slack_channel
        defaults = self._defaults_provider()
        settings = await self.settings()
        scope_channels = {**defaults.scope_channels, **settings.scope_channels}
        if scope_name and scope_channels.get(scope_name):
            return scope_channels[scope_name]
        if domain_name and defaults.domain_channels.get(domain_name):
            return defaults.domain_channels[domain_name]
        return settings.default_channel or defaults.slack_channel or self._fallback_channel

    async def resolve_for_ticket(
        self,
        context: TicketContext,
        channel: Optional[NotifyChannel] = None,
    ) -> NotificationConfig:
        """
        Final delivery configuration for a ticket.

        Channel toggles already reflect ``should_send_slack`` and
        ``should_send_email``; ``channel`` restricts delivery to one channel.
        """
        ticket = context.ticket
        config = await self.resolve(
            ticket.category_id, ticket.subcategory_id, ticket.scope_id, ticket.location
        )
        send_slack = await self.should_send_slack(
            context.category_name, ticket.category_id, ticket.subcategory_id, config
        )
        send_email = await self.should_send_email(ticket.category_id, ticket.subcategory_id, config)
        if channel is not None:
            send_slack = send_slack and channel == NotifyChannel.SLACK
            send_email = send_email and channel == NotifyChannel.EMAIL

        slack_channel = None
        if send_slack:
            slack_channel = await self.slack_channel_for(
                config, context.domain_name, context.routing_scope
            )
        return dataclasses.replace(
            config, enable_slack=send_slack, enable_email=send_email, slack_channel=slack_channel
        )


# ========== Dispatch ==========

class NotificationDispatcher:
    """Delivers one message to every enabled channel, independently."""

    def __init__(self, slack: ISlackGateway, email: IEmailGateway):
        self._slack = slack
        self._email = email

    async def _send_slack(self, config: NotificationConfig, message: NotificationMessage, result: DispatchResult) -> None:
        channel = message.slack_channel or config.slack_channel
        if not channel:
            result.skipped.append(NotifyChannel.SLACK.value)
            return
        mentions = tuple(dict.fromkeys(message.slack_mentions + config.slack_cc_user_ids))
        try:
            ts = await self._slack.post_message(
                channel,
                message.text,
                thread_ts=message.slack_thread_ts,
                mentions=mentions,
                ticket_id=message.ticket_id if message.interactive else None,
            )
        except Exception as e:
            result.failures[NotifyChannel.SLACK.value] = str(e)
            logger.error(
                "Slack delivery failed",
                extra={"ticket_id": message.ticket_id, "channel": channel, "error": str(e)}
            )
            return
        if ts:
            result.delivered.append(NotifyChannel.SLACK.value)
            result.slack_ts = ts
            result.slack_channel = channel
        else:
            result.failures[NotifyChannel.SLACK.value] = "not delivered"

    async def _send_email(self, config: NotificationConfig, message: NotificationMessage, result: DispatchResult) -> None:
        recipients = list(dict.fromkeys(message.email_to + config.email_recipients))
        if not recipients:
            result.skipped.append(NotifyChannel.EMAIL.value)
            return
        failed = []
        for to in recipients:
            try:
                response = await self._email.send_email(to=to, subject=message.subject, body=message.text)
                if not response.get("success"):
                    failed.append(to)
            except Exception as e:
                failed.append(to)
                logger.error(
                    "Email delivery failed",
                    extra={"ticket_id": message.ticket_id, "to": to, "error": str(e)}
                )
        if len(failed) < len(recipients):
            result.delivered.append(NotifyChannel.EMAIL.value)
        if failed:
            result.failures[NotifyChannel.EMAIL.value] = f"failed for {len(failed)} of {len(recipients)} recipients"

    async def notify(
        self,
        config: NotificationConfig,
        message: NotificationMessage,
        context: Optional[TicketContext] = None,
    ) -> DispatchResult:
        """
        Deliver ``message`` on every channel ``config`` enables.

        Never raises; per-channel outcomes are in the result.
        """
        result = DispatchResult(ticket_id=message.ticket_id)
        if config.enable_slack:
            await self._send_slack(config, message, result)
        else:
            result.skipped.append(NotifyChannel.SLACK.value)
        if config.enable_email:
            await self._send_email(config, message, result)
        else:
            result.skipped.append(NotifyChannel.EMAIL.value)

        log_extra = {
            "kind": message.kind.value,
            "category": context.category_name if context else None,
            **result.as_dict()
        }
        if result.failures:
            logger.error("Notification partially failed", extra=log_extra)
        else:
            logger.info("Notification dispatched", extra=log_extra)
        return result


# ========== Admin Services ==========

class NotificationConfigService:
    """CRUD over ``notification_config`` rows."""

    def __init__(self, repository: INotificationConfigRepository):
        self._repository = repository

    async def list_rules(self, category_id: Optional[int] = None) -> List[NotificationRule]:
        return await self._repository.list_rules(category_id)

    async def get_rule(self, rule_id: int) -> NotificationRule:
        rule = await self._repository.get(rule_id)
        if rule is None:
            raise ResourceNotFoundException("NotificationConfig", str(rule_id))
        return rule

    async def create_rule(self, rule: NotificationRule) -> NotificationRule:
        if rule.tier is None:
            raise ValidationException(
                "Config must target category+subcategory, scope, category or nothing",
                {"category_id": rule.category_id, "subcategory_id": rule.subcategory_id, "scope_id": rule.scope_id}
            )
        rule = await self._repository.add(rule)
        logger.info("Notification config created", extra={"config_id": rule.id, "tier": rule.tier})
        return rule

    async def update_rule(self, rule_id: int, changes: Dict) -> NotificationRule:
        current = await self.get_rule(rule_id)
        updated = dataclasses.replace(current, **changes)
        if updated.tier is None:
            raise ValidationException("Config must target category+subcategory, scope, category or nothing")
        rule = await self._repository.update(updated)
        logger.info("Notification config updated", extra={"config_id": rule_id, "fields": sorted(changes)})
        return rule

    async def delete_rule(self, rule_id: int) -> None:
        if not await self._repository.delete(rule_id):
            raise ResourceNotFoundException("NotificationConfig", str(rule_id))
        logger.info("Notification config deleted", extra={"config_id": rule_id})


class NotificationSettingsService:
    """Read and update the settings row."""

    def __init__(self, repository: INotificationSettingsRepository, defaults_provider: Callable[[], NotificationDefaults]):
        self._repository = repository
        self._defaults_provider = defaults_provider

    async def get(self) -> NotificationSettings:
        current = await self._repository.get()
        if current is not None:
            return current
        defaults = self._defaults_provider()
        return NotificationSettings(
            slack_enabled=defaults.enable_slack,
            email_enabled=defaults.enable_email,
            default_channel=defaults.slack_channel,
            scope_channels=dict(defaults.scope_channels),
        )

    async def update(self, changes: Dict, updated_by: str) -> NotificationSettings:
        current = await self.get()
        updated = current.model_copy(update={**changes, "updated_by": updated_by})
        saved = await self._repository.save(updated)
        logger.info("Notification settings updated", extra={"fields": sorted(changes), "updated_by": updated_by})
        return saved
