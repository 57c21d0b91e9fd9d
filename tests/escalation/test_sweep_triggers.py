"""Tests for the count-based escalation triggers."""

import pytest

from campus_resolve.escalation.application.sweep import (
    REOPEN_TRIGGER,
    TAT_EXTENSION_TRIGGER,
    escalation_reason,
    pending_trigger,
)

from factories import make_ticket


class TestPendingTrigger:
    """Tests for pending_trigger."""

    def test_quiet_ticket(self):
        """Test a ticket with no extensions or reopenings has no trigger."""
        assert pending_trigger(make_ticket()) is None

    def test_extension_limit(self):
        """Test the third extension triggers."""
        ticket = make_ticket(metadata={"tat_extended_count": 3})
        assert pending_trigger(ticket) == (TAT_EXTENSION_TRIGGER, "TAT extension limit (3 extensions)")

    def test_reopen_limit(self):
        """Test the third reopening triggers."""
        ticket = make_ticket(metadata={"reopen_count": 4})
        assert pending_trigger(ticket) == (REOPEN_TRIGGER, "Repeated reopening (4 times)")

    def test_below_limits(self):
        """Test counts under the limits do not trigger."""
        ticket = make_ticket(metadata={"tat_extended_count": 2, "reopen_count": 2})
        assert pending_trigger(ticket) is None

    def test_custom_limits(self):
        """Test the limits are configurable."""
        ticket = make_ticket(metadata={"tat_extended_count": 1})
        assert pending_trigger(ticket, extension_limit=1) is not None
        assert pending_trigger(ticket, extension_limit=2) is None

    def test_fired_trigger_not_repeated(self):
        """Test a trigger already recorded on the ticket falls through to the next one."""
        ticket = make_ticket(metadata={"tat_extended_count": 5, "reopen_count": 3})
        ticket.record_escalation_trigger(TAT_EXTENSION_TRIGGER)
        assert pending_trigger(ticket)[0] == REOPEN_TRIGGER

        ticket.record_escalation_trigger(REOPEN_TRIGGER)
        assert pending_trigger(ticket) is None

    def test_record_is_idempotent(self):
        """Test recording a trigger twice keeps one entry."""
        ticket = make_ticket()
        ticket.record_escalation_trigger(REOPEN_TRIGGER)
        ticket.record_escalation_trigger(REOPEN_TRIGGER)
        assert ticket.escalation_triggers == [REOPEN_TRIGGER]


class TestEscalationReason:
    """Tests for escalation_reason."""

    @pytest.mark.parametrize("acknowledged,level,expected", [
        (False, 0, "Acknowledgement deadline passed"),
        (True, 0, "Resolution deadline passed"),
        (False, 1, "Resolution deadline passed"),
    ])
    def test_reason(self, acknowledged, level, expected):
        """Test the reason names the deadline that lapsed."""
        assert escalation_reason(acknowledged, level) == expected
