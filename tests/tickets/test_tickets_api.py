"""Tests for the ticket endpoints."""

import pytest

from factories import as_principal, raise_ticket


class TestCreateTicket:
    """Tests for POST /tickets."""

    @pytest.mark.asyncio
    async def test_ticket_assigned_to_scope_spoc(self, client, seed):
        """Test a North Tower ticket goes to the SPOC granted that scope."""
        ticket = await raise_ticket(client, seed)

        assert ticket["status"] == "open"
        assert ticket["progress_percent"] == 10
        assert ticket["created_by"] == "student-1"
        assert ticket["assigned_to"] == "spoc-1"
        assert ticket["scope_id"] == seed.scope_id
        assert ticket["scope"] == "North Tower"
        assert ticket["domain"] == "Hostel"
        assert ticket["subcategory"] == "Plumbing"
        assert ticket["acknowledgement_due_at"] is not None

    @pytest.mark.asyncio
    async def test_ticket_without_location_goes_to_domain_admin(self, client, seed):
        """Test tickets with no scope fall back to the domain-wide grant."""
        ticket = await raise_ticket(client, seed, location=None)

        assert ticket["scope_id"] is None
        assert ticket["assigned_to"] == "admin-1"

    @pytest.mark.asyncio
    async def test_creation_notifies_spoc(self, client, seed, container, slack, email):
        """Test the SPOC is mentioned in the scope channel and emailed."""
        ticket = await raise_ticket(client, seed)
        assert await container.outbox.drain(timeout=5)

        assert len(slack.messages) == 1
        posted = slack.messages[0]
        assert posted["channel"] == "#north-tower"
        assert posted["mentions"] == ("U_SPOC",)
        assert posted["ticket_id"] == ticket["id"]
        assert posted["thread_ts"] is None
        assert "Leaking tap in room 101" in posted["text"]

        assert [m["to"] for m in email.sent] == ["spoc@campus.test"]
        assert email.sent[0]["subject"] == f"Ticket #{ticket['id']} Created - Hostel"

    @pytest.mark.asyncio
    async def test_unknown_category(self, client, seed):
        """Test an unknown category is a 400."""
        response = await client.post(
            "/tickets", json={"category_id": 999}, headers=as_principal("student-1")
        )
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationException"

    @pytest.mark.asyncio
    async def test_subcategory_of_another_category(self, client, seed):
        """Test a subcategory must belong to the chosen category."""
        response = await client.post(
            "/tickets",
            json={"category_id": seed.other_category_id, "subcategory_id": seed.subcategory_id},
            headers=as_principal("student-1"),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_principal(self, client, seed):
        """Test requests without an identity are rejected."""
        response = await client.post("/tickets", json={"category_id": seed.category_id})
        assert response.status_code == 401


class TestTicketAccess:
    """Tests for who may read and act on a ticket."""

    @pytest.mark.asyncio
    async def test_creator_and_staff_can_read(self, client, ticket_factory):
        """Test the creator and staff see the ticket with its deadline."""
        ticket = await ticket_factory()

        for principal in ("student-1", "spoc-1"):
            response = await client.get(f"/tickets/{ticket['id']}", headers=as_principal(principal))
            assert response.status_code == 200
            body = response.json()
            assert body["ticket"]["id"] == ticket["id"]
            assert body["next_deadline"]["due_at"] is not None
            assert body["escalations"] == []

    @pytest.mark.asyncio
    async def test_other_student_cannot_read(self, client, ticket_factory):
        """Test another student gets a 403."""
        ticket = await ticket_factory()
        response = await client.get(f"/tickets/{ticket['id']}", headers=as_principal("student-2"))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_student_cannot_acknowledge(self, client, ticket_factory):
        """Test staff actions need at least the committee role."""
        ticket = await ticket_factory()
        response = await client.post(f"/tickets/{ticket['id']}/acknowledge", headers=as_principal("student-1"))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_ticket(self, client, seed):
        """Test a missing ticket is a 404."""
        response = await client.get("/tickets/9999", headers=as_principal("spoc-1"))
        assert response.status_code == 404


class TestTicketLifecycle:
    """Tests for staff and student actions on a ticket."""

    @pytest.mark.asyncio
    async def test_acknowledge_then_tat(self, client, ticket_factory):
        """Test acknowledging starts progress and a second TAT counts as an extension."""
        ticket = await ticket_factory()
        url = f"/tickets/{ticket['id']}"

        acknowledged = await client.post(f"{url}/acknowledge", headers=as_principal("spoc-1"))
        assert acknowledged.status_code == 200
        assert acknowledged.json()["status"] == "in_progress"
        assert acknowledged.json()["acknowledged_by"] == "spoc-1"

        first = await client.post(f"{url}/tat", json={"tat": "2 days"}, headers=as_principal("spoc-1"))
        assert first.json()["tat"] == "2 days"
        assert first.json()["resolution_due_at"] is not None
        assert first.json()["tat_extended_count"] == 0

        extended = await client.post(f"{url}/tat", json={"tat": "1 week"}, headers=as_principal("spoc-1"))
        assert extended.json()["tat"] == "1 week"
        assert extended.json()["tat_extended_count"] == 1

        detail = await client.get(url, headers=as_principal("spoc-1"))
        events = detail.json()["escalations"]
        assert [e["kind"] for e in events] == ["tat_extension"]
        assert events[0]["actor"] == "spoc-1"

    @pytest.mark.asyncio
    async def test_blank_tat_rejected(self, client, ticket_factory):
        """Test a whitespace TAT fails request validation."""
        ticket = await ticket_factory()
        response = await client.post(
            f"/tickets/{ticket['id']}/tat", json={"tat": "   "}, headers=as_principal("spoc-1")
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tat", ["1.5 days", "999999 months", "0 hours"])
    async def test_unusable_tat_rejected(self, client, ticket_factory, tat):
        """Test fractional, oversized and zero TATs are rejected and leave the ticket unchanged."""
        ticket = await ticket_factory()
        url = f"/tickets/{ticket['id']}"

        response = await client.post(f"{url}/tat", json={"tat": tat}, headers=as_principal("spoc-1"))
        assert response.status_code == 400

        detail = await client.get(url, headers=as_principal("spoc-1"))
        assert detail.json()["ticket"]["tat"] is None

    @pytest.mark.asyncio
    async def test_comment_close_reopen(self, client, ticket_factory):
        """Test the creator comments and reopens after staff close."""
        ticket = await ticket_factory()
        url = f"/tickets/{ticket['id']}"

        commented = await client.post(
            f"{url}/comments", json={"text": "Still leaking"}, headers=as_principal("student-1")
        )
        assert commented.status_code == 200
        assert commented.json()["comments"][0]["text"] == "Still leaking"
        assert commented.json()["comments"][0]["author"] == "student-1"

        closed = await client.post(f"{url}/close", headers=as_principal("spoc-1"))
        assert closed.json()["status"] == "resolved"
        assert closed.json()["progress_percent"] == 100
        assert closed.json()["resolved_at"] is not None

        reopened = await client.post(f"{url}/reopen", headers=as_principal("student-1"))
        assert reopened.json()["status"] == "reopened"
        assert reopened.json()["resolved_at"] is None

    @pytest.mark.asyncio
    async def test_reopen_open_ticket(self, client, ticket_factory):
        """Test only resolved tickets can be reopened."""
        ticket = await ticket_factory()
        response = await client.post(f"/tickets/{ticket['id']}/reopen", headers=as_principal("student-1"))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_status_updates_reply_in_thread(self, client, ticket_factory, container, slack, email):
        """Test later notifications thread under the creation message and email the creator."""
        ticket = await ticket_factory()
        thread_ts = slack.messages[0]["ts"]

        await client.post(f"/tickets/{ticket['id']}/close", headers=as_principal("spoc-1"))
        assert await container.outbox.drain(timeout=5)

        reply = slack.messages[-1]
        assert reply["channel"] == "#north-tower"
        assert reply["thread_ts"] == thread_ts
        assert reply["ticket_id"] is None
        assert email.sent[-1]["to"] == "student@campus.test"
