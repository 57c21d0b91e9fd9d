"""
Notification Domain Entities
============================

Persisted configuration rows, the resolved configuration for one ticket,
and the messages handed to delivery channels.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from campus_resolve.config import NotificationKind


class ConfigTier:
    """Specificity tiers, most specific first."""
    SUBCATEGORY = "subcategory"
    SCOPE = "scope"
    CATEGORY = "category"
    GLOBAL = "global"
    DEFAULTS = "defaults"


@dataclass
class NotificationRule:
    """A ``notification_config`` row."""

    id: Optional[int]
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    scope_id: Optional[int] = None
    priority: int = 0
    enable_slack: bool = True
    enable_email: bool = True
    slack_channel: Optional[str] = None
    slack_cc_user_ids: Tuple[str, ...] = ()
    email_recipients: Tuple[str, ...] = ()
    is_active: bool = True

    @property
    def tier(self) -> Optional[str]:
        """Tier this row participates in; None for shapes no tier reads."""
        has_category = self.category_id is not None
        has_subcategory = self.subcategory_id is not None
        has_scope = self.scope_id is not None
        if has_category and has_subcategory and not has_scope:
            return ConfigTier.SUBCATEGORY
        if has_scope and not has_category and not has_subcategory:
            return ConfigTier.SCOPE
        if has_category and not has_subcategory and not has_scope:
            return ConfigTier.CATEGORY
        if not (has_category or has_subcategory or has_scope):
            return ConfigTier.GLOBAL
        return None


@dataclass(frozen=True)
class NotificationConfig:
    """Channels and recipients that apply to one ticket."""

    enable_slack: bool
    enable_email: bool
    slack_channel: Optional[str] = None
    slack_cc_user_ids: Tuple[str, ...] = ()
    email_recipients: Tuple[str, ...] = ()
    source: str = ConfigTier.DEFAULTS
    config_id: Optional[int] = None

    @property
    def from_defaults(self) -> bool:
        return self.source == ConfigTier.DEFAULTS

    @classmethod
    def from_rule(cls, rule: NotificationRule, source: str) -> "NotificationConfig":
        return cls(
            enable_slack=rule.enable_slack,
            enable_email=rule.enable_email,
            slack_channel=rule.slack_channel or None,
            slack_cc_user_ids=tuple(rule.slack_cc_user_ids),
            email_recipients=tuple(rule.email_recipients),
            source=source,
            config_id=rule.id,
        )


@dataclass(frozen=True)
class Recipient:
    """Contact details of a principal."""

    external_id: str
    email: Optional[str] = None
    slack_user_id: Optional[str] = None
    full_name: Optional[str] = None


@dataclass(frozen=True)
class NotificationMessage:
    """Channel-neutral content of one notification."""

    kind: NotificationKind
    ticket_id: int
    subject: str
    text: str
    slack_channel: Optional[str] = None
    slack_thread_ts: Optional[str] = None
    slack_mentions: Tuple[str, ...] = ()
    email_to: Tuple[str, ...] = ()
    interactive: bool = False


@dataclass
class DispatchResult:
    """Per-channel outcome of one dispatch."""

    ticket_id: int
    delivered: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    slack_ts: Optional[str] = None
    slack_channel: Optional[str] = None
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_dict(self) -> Dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "delivered": list(self.delivered),
            "failures": dict(self.failures),
            "skipped": list(self.skipped),
        }
