"""
Notification Application DTOs
=============================

Pydantic models for notification configuration and settings.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from campus_resolve.notifications.domain import NotificationConfig, NotificationRule, NotificationSettings


def _clean(values: Optional[List[str]]) -> Optional[List[str]]:
    if values is None:
        return None
    return [v.strip() for v in values if v and v.strip()]


class NotificationConfigRequest(BaseModel):
    """
    Request body for a configuration row.

    Leave category, subcategory and scope empty for the global row; set
    only a scope for a scope row; set a category (and optionally a
    subcategory) for category rows.
    """
    category_id: Optional[int] = Field(None, ge=1)
    subcategory_id: Optional[int] = Field(None, ge=1)
    scope_id: Optional[int] = Field(None, ge=1)
    priority: int = Field(default=0, description="Higher wins within a tier")
    enable_slack: bool = True
    enable_email: bool = True
    slack_channel: Optional[str] = Field(None, max_length=128)
    slack_cc_user_ids: List[str] = Field(default_factory=list)
    email_recipients: List[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("slack_cc_user_ids", "email_recipients")
    @classmethod
    def drop_blank_entries(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean(v)

    def to_rule(self) -> NotificationRule:
        return NotificationRule(
            id=None,
            category_id=self.category_id,
            subcategory_id=self.subcategory_id,
            scope_id=self.scope_id,
            priority=self.priority,
            enable_slack=self.enable_slack,
            enable_email=self.enable_email,
            slack_channel=self.slack_channel or None,
            slack_cc_user_ids=tuple(self.slack_cc_user_ids),
            email_recipients=tuple(self.email_recipients),
            is_active=self.is_active,
        )


class NotificationConfigUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    category_id: Optional[int] = Field(None, ge=1)
    subcategory_id: Optional[int] = Field(None, ge=1)
    scope_id: Optional[int] = Field(None, ge=1)
    priority: Optional[int] = None
    enable_slack: Optional[bool] = None
    enable_email: Optional[bool] = None
    slack_channel: Optional[str] = Field(None, max_length=128)
    slack_cc_user_ids: Optional[List[str]] = None
    email_recipients: Optional[List[str]] = None
    is_active: Optional[bool] = None

    @field_validator("slack_cc_user_ids", "email_recipients")
    @classmethod
    def drop_blank_entries(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean(v)

    def changes(self) -> Dict[str, Any]:
        changes = self.model_dump(exclude_unset=True)
        for key in ("priority", "enable_slack", "enable_email", "is_active", "slack_cc_user_ids", "email_recipients"):
            if key in changes and changes[key] is None:
                del changes[key]
        for key in ("slack_cc_user_ids", "email_recipients"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return changes


class NotificationConfigResponse(BaseModel):
    id: int
    tier: Optional[str] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    scope_id: Optional[int] = None
    priority: int
    enable_slack: bool
    enable_email: bool
    slack_channel: Optional[str] = None
    slack_cc_user_ids: List[str]
    email_recipients: List[str]
    is_active: bool

    @classmethod
    def from_rule(cls, rule: NotificationRule) -> "NotificationConfigResponse":
        return cls(
            id=rule.id,
            tier=rule.tier,
            category_id=rule.category_id,
            subcategory_id=rule.subcategory_id,
            scope_id=rule.scope_id,
            priority=rule.priority,
            enable_slack=rule.enable_slack,
            enable_email=rule.enable_email,
            slack_channel=rule.slack_channel,
            slack_cc_user_ids=list(rule.slack_cc_user_ids),
            email_recipients=list(rule.email_recipients),
            is_active=rule.is_active,
        )


class ResolvedConfigResponse(BaseModel):
    """The configuration a ticket with these attributes would get."""
    source: str
    config_id: Optional[int] = None
    enable_slack: bool
    enable_email: bool
    slack_channel: Optional[str] = None
    slack_cc_user_ids: List[str]
    email_recipients: List[str]

    @classmethod
    def from_config(cls, config: NotificationConfig) -> "ResolvedConfigResponse":
        return cls(
            source=config.source,
            config_id=config.config_id,
            enable_slack=config.enable_slack,
            enable_email=config.enable_email,
            slack_channel=config.slack_channel,
            slack_cc_user_ids=list(config.slack_cc_user_ids),
            email_recipients=list(config.email_recipients),
        )


class NotificationSettingsUpdateRequest(BaseModel):
    slack_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    tat_reminders_enabled: Optional[bool] = None
    default_channel: Optional[str] = Field(None, max_length=128)
    scope_channels: Optional[Dict[str, str]] = None

    def changes(self) -> Dict[str, Any]:
        return {k: v for k, v in self.model_dump(exclude_unset=True).items() if v is not None or k == "default_channel"}


class NotificationSettingsResponse(BaseModel):
    slack_enabled: bool
    email_enabled: bool
    tat_reminders_enabled: bool
    default_channel: Optional[str] = None
    scope_channels: Dict[str, str] = Field(default_factory=dict)
    updated_by: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> "NotificationSettingsResponse":
        return cls(**settings.model_dump())
