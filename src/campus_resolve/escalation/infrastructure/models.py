"""
Escalation Infrastructure Models
================================

SQLAlchemy ORM models for escalation rules and the escalation event log.

The unique constraint on (domain_id, scope_id, level) does not cover
domain-wide rules because NULL never equals NULL; the rule service checks
duplicates itself.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Text, DateTime, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from campus_resolve.infrastructure.database import Base
from campus_resolve.config import NotifyChannel


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EscalationRuleModel(Base):
    """Maps to the 'escalation_rules' table."""
    __tablename__ = "escalation_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain_id: Mapped[int] = mapped_column(
        ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scope_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scopes.id", ondelete="CASCADE"), nullable=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    assignee_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    tat_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=48)
    notify_channel: Mapped[str] = mapped_column(
        String(16), nullable=False, default=NotifyChannel.SLACK.value
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (
        UniqueConstraint("domain_id", "scope_id", "level", name="uq_escalation_rules_partition_level"),
    )


class TicketEscalationEventModel(Base):
    """Append-only log of ladder steps and TAT extensions."""
    __tablename__ = "ticket_escalation_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    from_level: Mapped[int] = mapped_column(Integer, nullable=False)
    to_level: Mapped[int] = mapped_column(Integer, nullable=False)
    assignee: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    channel: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
