"""
Access Infrastructure Models
============================

SQLAlchemy ORM models for principals and the routing partitions
(domains and scopes) they are granted.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    String, DateTime, Boolean, Integer, ForeignKey, UniqueConstraint, Uuid
)
from sqlalchemy.orm import Mapped, mapped_column

from campus_resolve.infrastructure.database import Base
from campus_resolve.config import Role


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DomainModel(Base):
    """Coarse routing axis, e.g. 'Hostel' or 'College'."""
    __tablename__ = "domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ScopeModel(Base):
    """Sub-partition of a domain, e.g. one hostel building."""
    __tablename__ = "scopes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain_id: Mapped[int] = mapped_column(
        ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("domain_id", "name", name="uq_scopes_domain_name"),
    )


class UserModel(Base):
    """
    A principal.

    ``external_id`` is the stable id issued by the identity provider and is
    the identity every other module refers to.
    """
    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    external_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    email: Mapped[Optional[str]] = mapped_column(String(256), unique=True, nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(240), nullable=True)
    slack_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    role: Mapped[str] = mapped_column(String(32), nullable=False, default=Role.STUDENT.value)
    primary_domain_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("domains.id"), nullable=True
    )
    primary_scope_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("scopes.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class AdminAssignmentModel(Base):
    """Secondary domain/scope grant held in addition to the primary one."""
    __tablename__ = "admin_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    domain_id: Mapped[int] = mapped_column(
        ForeignKey("domains.id", ondelete="CASCADE"), nullable=False, index=True
    )
    scope_id: Mapped[Optional[int]] = mapped_column(ForeignKey("scopes.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        UniqueConstraint("user_id", "domain_id", "scope_id", name="uq_admin_assignment"),
    )
