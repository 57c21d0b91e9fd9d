"""
Notification Infrastructure Models
==================================

SQLAlchemy ORM models for notification configuration rows and the
administrator settings row.

``notification_config`` arrived in a later migration; code reading it
checks the schema probe first.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, String, DateTime, Boolean, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from campus_resolve.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationConfigModel(Base):
    """Maps to the 'notification_config' table."""
    __tablename__ = "notification_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=True, index=True
    )
    subcategory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subcategories.id", ondelete="CASCADE"), nullable=True
    )
    scope_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scopes.id", ondelete="CASCADE"), nullable=True, index=True
    )
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    enable_slack: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    enable_email: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    slack_channel: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    slack_cc_user_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    email_recipients: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )


class NotificationSettingsModel(Base):
    """Single-row administrator settings."""
    __tablename__ = "notification_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slack_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tat_reminders_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # {"default_channel": "#tickets", "scope_channels": {"North Tower": "#north-tower"}}
    slack_config: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    updated_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )
