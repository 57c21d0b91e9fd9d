"""Tests for the Ticket aggregate."""

from datetime import timedelta

import pytest

from campus_resolve.config import TicketStatus
from campus_resolve.core import DomainException

from factories import NOW, make_context, make_ticket


class TestAcknowledge:
    """Tests for Ticket.acknowledge."""

    def test_first_acknowledgement_moves_to_in_progress(self):
        """Test acknowledging an open ticket."""
        ticket = make_ticket()
        later = NOW + timedelta(hours=1)

        assert ticket.acknowledge("spoc-1", at=later) is True
        assert ticket.status == TicketStatus.IN_PROGRESS
        assert ticket.acknowledged_at == later
        assert ticket.acknowledged_by == "spoc-1"
        assert ticket.updated_at == later

    def test_second_acknowledgement_is_noop(self):
        """Test acknowledging twice keeps the first acknowledgement."""
        ticket = make_ticket()
        ticket.acknowledge("spoc-1", at=NOW)

        assert ticket.acknowledge("admin-1", at=NOW + timedelta(hours=2)) is False
        assert ticket.acknowledged_by == "spoc-1"

    def test_resolved_ticket_cannot_be_acknowledged(self):
        """Test that final tickets reject staff actions."""
        ticket = make_ticket(status=TicketStatus.RESOLVED)
        with pytest.raises(DomainException):
            ticket.acknowledge("spoc-1")


class TestSetTat:
    """Tests for Ticket.set_tat."""

    def test_first_tat_is_not_an_extension(self):
        """Test setting a TAT on a fresh ticket."""
        ticket = make_ticket()
        due = NOW + timedelta(days=2)

        assert ticket.set_tat("2 days", due, "spoc-1", at=NOW) is False
        assert ticket.tat == "2 days"
        assert ticket.resolution_due_at == due
        assert ticket.tat_extended_count == 0
        # Setting a TAT implies acknowledgement
        assert ticket.acknowledged_by == "spoc-1"

    def test_second_tat_is_recorded_as_extension(self):
        """Test that changing a TAT keeps the extension history."""
        ticket = make_ticket()
        ticket.set_tat("2 days", NOW + timedelta(days=2), "spoc-1", at=NOW)

        assert ticket.set_tat("1 week", NOW + timedelta(days=7), "admin-1", at=NOW) is True
        assert ticket.tat == "1 week"
        assert ticket.tat_extended_count == 1
        extension = ticket.metadata["tat_extensions"][0]
        assert extension["previous_tat"] == "2 days"
        assert extension["new_tat"] == "1 week"
        assert extension["extended_by"] == "admin-1"

    def test_mark_in_progress(self):
        """Test the in-progress flag on an escalated ticket."""
        ticket = make_ticket(status=TicketStatus.ESCALATED, escalation_level=1)
        ticket.set_tat("1 day", NOW + timedelta(days=1), "spoc-1", mark_in_progress=True)
        assert ticket.status == TicketStatus.IN_PROGRESS

    def test_metadata_is_replaced_not_mutated(self):
        """Test that metadata updates produce a new dict."""
        ticket = make_ticket(metadata={"fields": {"room": "101"}})
        before = ticket.metadata
        ticket.set_tat("1 day", NOW + timedelta(days=1), "spoc-1")
        assert ticket.metadata is not before
        assert "tat" not in before


class TestEscalate:
    """Tests for Ticket.escalate."""

    def test_escalate_reassigns_and_records(self):
        """Test a ladder step."""
        ticket = make_ticket()
        due = NOW + timedelta(hours=48)
        ticket.escalate(1, "admin-1", due, at=NOW)

        assert ticket.escalation_level == 1
        assert ticket.assigned_to == "admin-1"
        assert ticket.status == TicketStatus.ESCALATED
        assert ticket.resolution_due_at == due
        assert ticket.metadata["sla_breached_at"] == NOW.isoformat()

    def test_escalate_without_assignee_keeps_owner(self):
        """Test that a rule with no assignee only raises the level."""
        ticket = make_ticket()
        ticket.escalate(1, None, None, at=NOW)
        assert ticket.assigned_to == "spoc-1"

    def test_level_must_increase(self):
        """Test that escalation never goes down or sideways."""
        ticket = make_ticket(escalation_level=2)
        with pytest.raises(DomainException):
            ticket.escalate(2, None, None)

    def test_negative_level_rejected(self):
        """Test the non-negative level invariant."""
        with pytest.raises(ValueError):
            make_ticket(escalation_level=-1)


class TestCommentsCloseReopen:
    """Tests for comments, closing and reopening."""

    def test_add_comment(self):
        """Test a comment is stripped and appended."""
        ticket = make_ticket()
        comment = ticket.add_comment("  Plumber on the way  ", "spoc-1", source="slack", at=NOW)

        assert comment["text"] == "Plumber on the way"
        assert comment["source"] == "slack"
        assert ticket.comments == [comment]

    def test_empty_comment_rejected(self):
        """Test blank comments raise DomainException."""
        with pytest.raises(DomainException):
            make_ticket().add_comment("   ", "spoc-1")

    def test_close_and_reopen(self):
        """Test the resolve/reopen cycle."""
        ticket = make_ticket()
        ticket.close("spoc-1", at=NOW)
        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.is_final
        assert ticket.resolved_at == NOW

        ticket.reopen("student-1", at=NOW + timedelta(hours=1))
        assert ticket.status == TicketStatus.REOPENED
        assert ticket.resolved_at is None
        assert ticket.metadata["reopen_count"] == 1

    def test_only_final_tickets_reopen(self):
        """Test reopening an active ticket raises DomainException."""
        with pytest.raises(DomainException):
            make_ticket().reopen("student-1")

    def test_slack_thread_link(self):
        """Test linking the creation message does not touch updated_at."""
        ticket = make_ticket()
        ticket.link_slack_thread("#north-tower", "1772442000.000001")
        assert ticket.slack_thread == ("#north-tower", "1772442000.000001")
        assert ticket.updated_at == NOW


class TestTicketContext:
    """Tests for TicketContext."""

    def test_routing_scope_prefers_scope_name(self):
        """Test the scope name wins over the free-text location."""
        ticket = make_ticket(location="Room 12")
        assert make_context(ticket).routing_scope == "North Tower"
        assert make_context(ticket, scope_name=None).routing_scope == "Room 12"
