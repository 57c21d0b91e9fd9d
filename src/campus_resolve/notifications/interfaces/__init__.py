"""Notifications interfaces layer."""

from campus_resolve.notifications.interfaces.controllers import (
    notification_config_router,
    notification_cron_router,
    notification_settings_router,
)
from campus_resolve.notifications.interfaces.slack import slack_router

__all__ = [
    "notification_config_router",
    "notification_settings_router",
    "notification_cron_router",
    "slack_router",
]
