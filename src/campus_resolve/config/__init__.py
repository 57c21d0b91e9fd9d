"""
Configuration Module
====================

Application settings and routing constants using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="campus-resolve", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    public_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the staff dashboard, used in notification links"
    )

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/campus_resolve",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Access ==========
    role_cache_ttl_seconds: float = Field(
        default=5.0,
        description="Lifetime of a cached lowest-privilege role",
        gt=0
    )
    role_cache_max_size: int = Field(
        default=1000,
        description="Maximum number of cached principals",
        ge=10
    )
    identity_provider_userinfo_url: Optional[str] = Field(
        default=None,
        description="Identity provider userinfo endpoint; when unset the gateway header is trusted"
    )
    identity_provider_timeout_seconds: float = Field(default=3.0, ge=0.1, le=30)

    # ========== Schema Probe ==========
    schema_probe_ttl_seconds: float = Field(
        default=300.0,
        description="How long an optional-surface probe result is trusted",
        gt=0
    )

    # ========== Escalation ==========
    default_rule_tat_hours: int = Field(
        default=48,
        description="TAT applied to escalation rules created without one",
        ge=1
    )
    default_acknowledgement_hours: int = Field(
        default=24,
        description="Acknowledgement window when no escalation rule applies",
        ge=1
    )
    escalation_sweep_interval: int = Field(
        default=0,
        description="Seconds between in-process escalation sweeps (0 disables the scheduler)",
        ge=0
    )
    sweep_batch_size: int = Field(
        default=200,
        description="Tickets read per page by the escalation and reminder sweeps",
        ge=1
    )
    tat_extension_escalation_limit: int = Field(
        default=3,
        description="TAT extensions after which the sweep escalates a ticket once",
        ge=1
    )
    reopen_escalation_limit: int = Field(
        default=3,
        description="Reopens after which the sweep escalates a ticket once",
        ge=1
    )

    # ========== Reminders ==========
    reminder_threshold_hours: float = Field(
        default=2.0,
        description="Hours after creation before an unacknowledged ticket is reminded",
        gt=0
    )

    # ========== Notification Defaults ==========
    notification_defaults_path: Path = Field(
        default=Path("notification_defaults.yaml"),
        description="Path to the notification defaults YAML file"
    )
    outbox_max_size: int = Field(
        default=1000,
        description="Pending notifications held before new ones are dropped",
        ge=1
    )

    # ========== Slack Integration ==========
    slack_bot_token: Optional[str] = Field(
        default=None,
        description="Slack bot token used for chat.postMessage and views.open"
    )
    slack_api_url: str = Field(
        default="https://slack.com/api",
        description="Slack Web API base URL"
    )
    slack_signing_secret: Optional[str] = Field(
        default=None,
        description="Signing secret used to verify interactive requests from Slack"
    )
    slack_default_channel: str = Field(
        default="#tickets",
        description="Channel used when no configuration names one"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== Email ==========
    email_api_key: Optional[str] = Field(
        default=None,
        description="Transactional email (Brevo) API key"
    )
    email_api_url: str = Field(default="https://api.brevo.com/v3/smtp/email")
    email_from_address: Optional[str] = Field(default=None)
    email_from_name: str = Field(default="Campus Resolve")
    email_timeout_seconds: float = Field(default=10.0, ge=0.1, le=60)

    # ========== Cron ==========
    cron_secret: Optional[str] = Field(
        default=None,
        description="Shared secret expected as 'Authorization: Bearer <secret>' on cron endpoints"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Role(str, Enum):
    """Principal roles, lowest privilege first."""
    STUDENT = "student"
    COMMITTEE = "committee"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ROLE_PRIORITY: Dict[Role, int] = {
    Role.STUDENT: 1,
    Role.COMMITTEE: 2,
    Role.ADMIN: 3,
    Role.SUPER_ADMIN: 5,
}

LOWEST_ROLE = Role.STUDENT

# Roles that can own tickets through a domain/scope grant
STAFF_ROLES = [Role.COMMITTEE, Role.ADMIN, Role.SUPER_ADMIN]

# Roles allowed as an escalation target
ESCALATION_TARGET_ROLES = [Role.ADMIN, Role.SUPER_ADMIN]


class NotifyChannel(str, Enum):
    """Delivery channels for notifications."""
    SLACK = "slack"
    EMAIL = "email"


class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    AWAITING_STUDENT = "awaiting_student"
    REOPENED = "reopened"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class StatusDefinition(NamedTuple):
    label: str
    progress_percent: int
    is_final: bool
    display_order: int


STATUS_DEFINITIONS: Dict[TicketStatus, StatusDefinition] = {
    TicketStatus.OPEN: StatusDefinition("Open", 10, False, 1),
    TicketStatus.IN_PROGRESS: StatusDefinition("In Progress", 50, False, 2),
    TicketStatus.AWAITING_STUDENT: StatusDefinition("Awaiting Student", 70, False, 3),
    TicketStatus.REOPENED: StatusDefinition("Reopened", 30, False, 4),
    TicketStatus.ESCALATED: StatusDefinition("Escalated", 60, False, 5),
    TicketStatus.RESOLVED: StatusDefinition("Resolved", 100, True, 6),
}

FINAL_STATUSES = [s for s, d in STATUS_DEFINITIONS.items() if d.is_final]
ACTIVE_STATUSES = [s for s, d in STATUS_DEFINITIONS.items() if not d.is_final]


class EscalationEventKind(str, Enum):
    """Distinguishes ladder-driven and manual escalation from staff TAT extensions."""
    AUTO_ESCALATION = "auto_escalation"
    MANUAL_ESCALATION = "manual_escalation"
    TAT_EXTENSION = "tat_extension"


class NotificationKind(str, Enum):
    """What a notification is about."""
    TICKET_CREATED = "ticket.created"
    STATUS_CHANGED = "ticket.status_changed"
    COMMENT_ADDED = "ticket.comment_added"
    TAT_SET = "ticket.tat_set"
    ESCALATED = "ticket.escalated"
    REMINDER = "ticket.reminder"


# Optional schema surfaces that may be absent in partially migrated deployments
class OptionalSurface(str):
    FIELD_ASSIGNMENT = "category_fields.assigned_admin_id"
    SUBCATEGORY_ASSIGNMENT = "subcategories.assigned_admin_id"
    CATEGORY_ASSIGNMENTS = "category_assignments"
    NOTIFICATION_CONFIG = "notification_config"


OPTIONAL_SURFACES = [
    OptionalSurface.FIELD_ASSIGNMENT,
    OptionalSurface.SUBCATEGORY_ASSIGNMENT,
    OptionalSurface.CATEGORY_ASSIGNMENTS,
    OptionalSurface.NOTIFICATION_CONFIG,
]

# Categories that received Slack notifications before notification_config existed
LEGACY_SLACK_CATEGORIES = ["Hostel", "College", "Committee"]

# Header set by the authenticating gateway when no userinfo endpoint is configured
PRINCIPAL_HEADER = "X-Principal-Id"
