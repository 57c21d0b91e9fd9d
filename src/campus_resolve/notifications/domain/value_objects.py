"""
Notification Value Objects
==========================

Deployment defaults loaded from YAML and the settings row layered on top
of them.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from campus_resolve.config import LEGACY_SLACK_CATEGORIES


class NotificationDefaults(BaseModel):
    """
    Notification defaults loaded from ``notification_defaults.yaml``.

    Used whenever no active ``notification_config`` row applies.
    """
    enable_slack: bool = Field(default=True, description="Slack toggle when no config row applies")
    enable_email: bool = Field(default=True, description="Email toggle when no config row applies")
    slack_channel: Optional[str] = Field(
        default=None,
        description="Default Slack channel; falls back to the SLACK_DEFAULT_CHANNEL setting"
    )
    slack_cc_user_ids: List[str] = Field(default_factory=list, description="Slack ids CC'd by default")
    email_recipients: List[str] = Field(default_factory=list, description="Extra email recipients")
    legacy_slack_categories: List[str] = Field(
        default_factory=lambda: list(LEGACY_SLACK_CATEGORIES),
        description="Categories that get Slack when no config row exists at all"
    )
    domain_channels: Dict[str, str] = Field(
        default_factory=dict,
        description="Slack channel per domain name"
    )
    scope_channels: Dict[str, str] = Field(
        default_factory=dict,
        description="Slack channel per scope name"
    )

    @field_validator("slack_cc_user_ids", "email_recipients", "legacy_slack_categories")
    @classmethod
    def drop_blank_entries(cls, v: List[str]) -> List[str]:
        return [item.strip() for item in v if item and item.strip()]


class NotificationSettings(BaseModel):
    """Administrator-editable settings (a single row), layered over the defaults."""
    slack_enabled: bool = True
    email_enabled: bool = True
    tat_reminders_enabled: bool = True
    default_channel: Optional[str] = None
    scope_channels: Dict[str, str] = Field(default_factory=dict)
    updated_by: Optional[str] = None
