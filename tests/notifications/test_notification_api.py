"""Tests for notification configuration, settings and the reminder sweep."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from campus_resolve.core import utcnow
from campus_resolve.infrastructure.database import get_session_context
from campus_resolve.tickets.infrastructure.models import TicketModel

from factories import as_principal

ROOT = as_principal("root-1")
ADMIN = as_principal("admin-1")


class TestNotificationConfigApi:
    """Tests for /notification-config."""

    @pytest.mark.asyncio
    async def test_crud(self, client, seed):
        """Test create, read, update and delete of a category row."""
        created = await client.post(
            "/notification-config",
            json={"category_id": seed.category_id, "slack_channel": "#hostel-desk",
                  "email_recipients": ["desk@campus.test", " "]},
            headers=ROOT,
        )
        assert created.status_code == 201
        row = created.json()
        assert row["tier"] == "category"
        assert row["email_recipients"] == ["desk@campus.test"]

        listed = await client.get("/notification-config", params={"category_id": seed.category_id}, headers=ROOT)
        assert [r["id"] for r in listed.json()] == [row["id"]]

        updated = await client.patch(f"/notification-config/{row['id']}", json={"priority": 5}, headers=ROOT)
        assert updated.json()["priority"] == 5
        assert updated.json()["slack_channel"] == "#hostel-desk"

        assert (await client.delete(f"/notification-config/{row['id']}", headers=ROOT)).status_code == 204
        assert (await client.get(f"/notification-config/{row['id']}", headers=ROOT)).status_code == 404

    @pytest.mark.asyncio
    async def test_subcategory_without_category_rejected(self, client, seed):
        """Test rows that no tier reads are refused."""
        response = await client.post(
            "/notification-config", json={"subcategory_id": seed.subcategory_id}, headers=ROOT
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_super_admin_only(self, client, seed):
        """Test admins cannot edit configuration rows."""
        response = await client.post("/notification-config", json={}, headers=ADMIN)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_resolve_preview(self, client, seed):
        """Test the preview reports which tier answered."""
        defaults = await client.get(
            "/notification-config/resolve", params={"category_id": seed.category_id}, headers=ADMIN
        )
        assert defaults.json()["source"] == "defaults"
        assert defaults.json()["config_id"] is None

        scope_row = (await client.post(
            "/notification-config", json={"scope_id": seed.scope_id, "slack_channel": "#tower-desk"}, headers=ROOT
        )).json()
        await client.post("/notification-config", json={"category_id": seed.category_id}, headers=ROOT)

        by_location = await client.get(
            "/notification-config/resolve",
            params={"category_id": seed.category_id, "location": "North Tower"},
            headers=ADMIN,
        )
        assert by_location.json()["source"] == "scope"
        assert by_location.json()["config_id"] == scope_row["id"]
        assert by_location.json()["slack_channel"] == "#tower-desk"

        by_category = await client.get(
            "/notification-config/resolve", params={"category_id": seed.category_id}, headers=ADMIN
        )
        assert by_category.json()["source"] == "category"


class TestConfiguredDelivery:
    """Tests for how configuration rows change ticket notifications."""

    @pytest.mark.asyncio
    async def test_row_channel_and_recipients_used(self, client, seed, ticket_factory, slack, email):
        """Test a category row overrides the scope channel and adds recipients."""
        await client.post(
            "/notification-config",
            json={"category_id": seed.category_id, "slack_channel": "#hostel-desk",
                  "slack_cc_user_ids": ["U_WARDEN"], "email_recipients": ["desk@campus.test"]},
            headers=ROOT,
        )
        await ticket_factory()

        assert slack.messages[0]["channel"] == "#hostel-desk"
        assert slack.messages[0]["mentions"] == ("U_SPOC", "U_WARDEN")
        assert [m["to"] for m in email.sent] == ["spoc@campus.test", "desk@campus.test"]

    @pytest.mark.asyncio
    async def test_unlisted_category_needs_a_row_for_slack(self, client, seed, ticket_factory, slack):
        """Test categories off the legacy list only reach Slack once configured."""
        await ticket_factory(category_id=seed.other_category_id, subcategory_id=None)
        assert slack.messages == []

        await client.post(
            "/notification-config",
            json={"category_id": seed.other_category_id, "slack_channel": "#library"},
            headers=ROOT,
        )
        await ticket_factory(category_id=seed.other_category_id, subcategory_id=None)
        assert [m["channel"] for m in slack.messages] == ["#library"]

    @pytest.mark.asyncio
    async def test_row_can_disable_email(self, client, seed, ticket_factory, email):
        """Test a row with email off silences email for its category."""
        await client.post(
            "/notification-config", json={"category_id": seed.category_id, "enable_email": False}, headers=ROOT
        )
        await ticket_factory()
        assert email.sent == []


class TestNotificationSettingsApi:
    """Tests for /notification-settings."""

    @pytest.mark.asyncio
    async def test_defaults_before_any_update(self, client, seed):
        """Test the settings start from the deployment defaults."""
        response = await client.get("/notification-settings", headers=ADMIN)
        assert response.status_code == 200
        body = response.json()
        assert body["slack_enabled"] is True
        assert body["default_channel"] == "#tickets"
        assert body["scope_channels"] == {"North Tower": "#north-tower"}

    @pytest.mark.asyncio
    async def test_update_is_a_master_switch(self, client, seed, ticket_factory, slack, email):
        """Test turning Slack off silences it even for legacy categories."""
        response = await client.put("/notification-settings", json={"slack_enabled": False}, headers=ROOT)
        assert response.status_code == 200
        assert response.json()["slack_enabled"] is False
        assert response.json()["updated_by"] == "root-1"

        await ticket_factory()
        assert slack.messages == []
        assert len(email.sent) == 1

    @pytest.mark.asyncio
    async def test_scope_channel_override(self, client, seed, ticket_factory, slack):
        """Test settings scope channels win over the defaults file."""
        await client.put(
            "/notification-settings", json={"scope_channels": {"North Tower": "#tower-ops"}}, headers=ROOT
        )
        await ticket_factory()
        assert slack.messages[0]["channel"] == "#tower-ops"

    @pytest.mark.asyncio
    async def test_permissions(self, client, seed):
        """Test reading needs admin and writing needs super admin."""
        assert (await client.get("/notification-settings", headers=as_principal("spoc-1"))).status_code == 403
        assert (await client.put("/notification-settings", json={}, headers=ADMIN)).status_code == 403


class TestRemindSpocsApi:
    """Tests for GET /cron/remind-spocs."""

    @pytest.mark.asyncio
    async def test_unacknowledged_ticket_reminded(self, client, seed, ticket_factory, slack):
        """Test an old unacknowledged ticket reminds its SPOC in the ticket thread."""
        ticket = await ticket_factory()
        async with get_session_context() as session:
            await session.execute(
                update(TicketModel)
                .where(TicketModel.id == ticket["id"])
                .values(created_at=utcnow() - timedelta(hours=5))
            )
            await session.commit()

        response = await client.get("/cron/remind-spocs")
        assert response.status_code == 200
        body = response.json()
        assert body["remindersSent"] == 1
        assert body["reminders"][0]["ticketId"] == ticket["id"]
        assert body["reminders"][0]["reason"] == "Ticket not acknowledged (created 5 hours ago)"
        assert body["reminders"][0]["channels"] == ["slack", "email"]

        reminder = slack.messages[-1]
        assert reminder["thread_ts"] == slack.messages[0]["ts"]
        assert reminder["mentions"] == ("U_SPOC",)

    @pytest.mark.asyncio
    async def test_fresh_ticket_not_reminded(self, client, seed, ticket_factory):
        """Test tickets younger than the threshold are skipped."""
        await ticket_factory()
        response = await client.get("/cron/remind-spocs")
        assert response.json()["remindersSent"] == 0

    @pytest.mark.asyncio
    async def test_reminders_switched_off(self, client, seed, ticket_factory):
        """Test the settings toggle disables the sweep."""
        await client.put("/notification-settings", json={"tat_reminders_enabled": False}, headers=ROOT)
        response = await client.get("/cron/remind-spocs")
        assert response.json()["disabled"] is True

    @pytest.mark.asyncio
    async def test_assigned_ticket_behind_unassigned_backlog(self, client, seed, ticket_factory, container):
        """Test a backlog of older unassigned tickets does not hide assigned ones."""
        container.settings = container.settings.model_copy(update={"sweep_batch_size": 2})
        backlog = [await ticket_factory() for _ in range(3)]
        assigned = await ticket_factory()
        async with get_session_context() as session:
            await session.execute(
                update(TicketModel)
                .where(TicketModel.id.in_([t["id"] for t in backlog]))
                .values(assigned_to=None, created_at=utcnow() - timedelta(hours=10))
            )
            await session.execute(
                update(TicketModel)
                .where(TicketModel.id == assigned["id"])
                .values(created_at=utcnow() - timedelta(hours=5))
            )
            await session.commit()

        response = await client.get("/cron/remind-spocs")
        body = response.json()
        assert body["remindersSent"] == 1
        assert [r["ticketId"] for r in body["reminders"]] == [assigned["id"]]
