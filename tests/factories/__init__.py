"""Test doubles and seed data shared across the test suite."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.infrastructure.models import (
    AdminAssignmentModel, DomainModel, ScopeModel, UserModel
)
from campus_resolve.config import Role, TicketStatus
from campus_resolve.notifications.application.services import IEmailGateway, ISlackGateway
from campus_resolve.tickets.domain import Ticket, TicketContext
from campus_resolve.tickets.infrastructure.models import CategoryModel, SubcategoryModel

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeSlackClient(ISlackGateway):
    """Records posts and modal opens instead of calling Slack."""

    circuit_state = "closed"

    def __init__(self, configured: bool = True, fail: bool = False):
        self.configured = configured
        self.fail = fail
        self.messages: List[Dict[str, Any]] = []
        self.views: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def post_message(
        self,
        channel: str,
        text: str,
        thread_ts: Optional[str] = None,
        mentions: Sequence[str] = (),
        ticket_id: Optional[int] = None,
    ) -> Optional[str]:
        if self.fail:
            raise RuntimeError("slack unavailable")
        ts = f"1772442000.{len(self.messages) + 1:06d}"
        self.messages.append({
            "ts": ts,
            "channel": channel,
            "text": text,
            "thread_ts": thread_ts,
            "mentions": tuple(mentions),
            "ticket_id": ticket_id,
        })
        return ts

    async def open_view(self, trigger_id: str, view: Dict[str, Any]) -> bool:
        self.views.append({"trigger_id": trigger_id, "view": view})
        return True

    async def close(self) -> None:
        pass


class FakeEmailClient(IEmailGateway):
    """Records sent mail; addresses in ``failing`` get a failure response."""

    def __init__(self, configured: bool = True, failing: Sequence[str] = ()):
        self.configured = configured
        self.failing = set(failing)
        self.sent: List[Dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict:
        if to in self.failing:
            return {"success": False, "error": "rejected", "status_code": 400, "message_id": None}
        self.sent.append({"to": to, "subject": subject, "body": body})
        return {"success": True, "status_code": 201, "message_id": f"msg-{len(self.sent)}"}

    async def close(self) -> None:
        pass


def make_ticket(**overrides: Any) -> Ticket:
    values: Dict[str, Any] = {
        "id": 1,
        "created_by": "student-1",
        "status": TicketStatus.OPEN,
        "created_at": NOW,
        "updated_at": NOW,
        "category_id": 1,
        "assigned_to": "spoc-1",
    }
    values.update(overrides)
    return Ticket(**values)


def make_context(ticket: Optional[Ticket] = None, **overrides: Any) -> TicketContext:
    values: Dict[str, Any] = {
        "ticket": ticket or make_ticket(),
        "category_name": "Hostel",
        "domain_id": 1,
        "domain_name": "Hostel",
        "scope_name": "North Tower",
    }
    values.update(overrides)
    return TicketContext(**values)


@dataclass
class Seed:
    """Ids of the rows created by ``seed_campus``."""

    domain_id: int
    other_domain_id: int
    scope_id: int
    category_id: int
    subcategory_id: int
    other_category_id: int


async def _user(
    session: AsyncSession,
    external_id: str,
    role: Role,
    email: Optional[str] = None,
    slack_user_id: Optional[str] = None,
    domain_id: Optional[int] = None,
    scope_id: Optional[int] = None,
    created_at: Optional[datetime] = None,
) -> UserModel:
    user = UserModel(
        external_id=external_id,
        email=email,
        full_name=external_id.replace("-", " ").title(),
        slack_user_id=slack_user_id,
        role=role.value,
        primary_domain_id=domain_id,
        primary_scope_id=scope_id,
        created_at=created_at or NOW,
    )
    session.add(user)
    await session.flush()
    return user


async def seed_campus(session: AsyncSession) -> Seed:
    """
    One hostel domain with a 'North Tower' scope and a plumbing subcategory.

    Principals:
    - student-1: student who raises tickets
    - spoc-1: committee member granted Hostel / North Tower (Slack U_SPOC)
    - admin-1: admin granted Hostel domain-wide
    - root-1: super admin
    """
    hostel = DomainModel(name="Hostel")
    library = DomainModel(name="Library")
    session.add_all([hostel, library])
    await session.flush()

    north = ScopeModel(domain_id=hostel.id, name="North Tower")
    session.add(north)
    await session.flush()

    await _user(session, "student-1", Role.STUDENT, email="student@campus.test", slack_user_id="U_STUDENT")
    await _user(
        session, "spoc-1", Role.COMMITTEE, email="spoc@campus.test", slack_user_id="U_SPOC",
        domain_id=hostel.id, scope_id=north.id,
    )
    admin = await _user(
        session, "admin-1", Role.ADMIN, email="admin@campus.test", slack_user_id="U_ADMIN",
        domain_id=hostel.id, created_at=NOW + timedelta(minutes=1),
    )
    await _user(session, "root-1", Role.SUPER_ADMIN, email="root@campus.test")

    category = CategoryModel(name="Hostel", slug="hostel", domain_id=hostel.id, default_admin_id=admin.id)
    other = CategoryModel(name="Library", slug="library", domain_id=library.id)
    session.add_all([category, other])
    await session.flush()

    plumbing = SubcategoryModel(category_id=category.id, name="Plumbing", slug="plumbing")
    session.add(plumbing)
    await session.commit()

    return Seed(
        domain_id=hostel.id,
        other_domain_id=library.id,
        scope_id=north.id,
        category_id=category.id,
        subcategory_id=plumbing.id,
        other_category_id=other.id,
    )


async def grant_secondary(session: AsyncSession, user: UserModel, domain_id: int, scope_id: Optional[int]) -> None:
    session.add(AdminAssignmentModel(user_id=user.id, domain_id=domain_id, scope_id=scope_id))
    await session.commit()


def as_principal(external_id: str) -> Dict[str, str]:
    """Headers that authenticate as ``external_id`` through the gateway header."""
    return {"X-Principal-Id": external_id}


async def raise_ticket(client, seed: Seed, principal: str = "student-1", **overrides: Any) -> Dict[str, Any]:
    """POST /tickets as ``principal`` for the seeded plumbing subcategory."""
    body: Dict[str, Any] = {
        "category_id": seed.category_id,
        "subcategory_id": seed.subcategory_id,
        "location": "North Tower",
        "description": "Leaking tap in room 101",
    }
    body.update(overrides)
    response = await client.post("/tickets", json=body, headers=as_principal(principal))
    assert response.status_code == 201, response.text
    return response.json()
