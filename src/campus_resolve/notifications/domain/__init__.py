"""Notifications domain layer."""

from campus_resolve.notifications.domain.entities import (
    ConfigTier,
    DispatchResult,
    NotificationConfig,
    NotificationMessage,
    NotificationRule,
    Recipient,
)
from campus_resolve.notifications.domain.value_objects import (
    NotificationDefaults,
    NotificationSettings,
)

__all__ = [
    "ConfigTier",
    "DispatchResult",
    "NotificationConfig",
    "NotificationMessage",
    "NotificationRule",
    "Recipient",
    "NotificationDefaults",
    "NotificationSettings",
]
