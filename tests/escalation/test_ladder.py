"""Tests for the escalation ladder."""

from datetime import timedelta

import pytest

from campus_resolve.config import EscalationEventKind, NotifyChannel, TicketStatus
from campus_resolve.escalation.domain import NO_DEADLINE, EscalationLadder, EscalationRule

from factories import NOW, make_ticket


def rule(level, tat_hours, **kwargs):
    return EscalationRule(domain_id=1, level=level, tat_hours=tat_hours, **kwargs)


@pytest.fixture
def ladder():
    return EscalationLadder([
        rule(2, 48, assignee="root-1", notify_channel=NotifyChannel.EMAIL),
        rule(1, 24, assignee="admin-1"),
    ])


class TestEscalationRule:
    """Tests for rule validation."""

    @pytest.mark.parametrize("level,tat", [(0, 24), (-1, 24), (1, 0)])
    def test_invalid_rules(self, level, tat):
        """Test level and TAT must be positive."""
        with pytest.raises(ValueError):
            rule(level, tat)


class TestLadderConstruction:
    """Tests for ordering and scope overrides."""

    def test_rules_sorted_by_level(self, ladder):
        """Test that rules are ordered by level regardless of input order."""
        assert [r.level for r in ladder.rules] == [1, 2]
        assert ladder.top_level == 2

    def test_scoped_rule_overrides_domain_rule(self):
        """Test a scope rule replaces the domain-wide rule at the same level."""
        ladder = EscalationLadder([
            rule(1, 24, assignee="admin-1", scope_id=7),
            rule(1, 12, assignee="root-1"),
            rule(2, 48),
        ])
        assert ladder.rule_for_level(1).assignee == "admin-1"
        assert ladder.rule_for_level(2).scope_id is None

    def test_acknowledgement_window(self, ladder):
        """Test the first rule's TAT sets the acknowledgement window."""
        assert ladder.acknowledgement_window() == timedelta(hours=24)
        assert EscalationLadder([], 6).acknowledgement_window() == timedelta(hours=6)


class TestNextDeadline:
    """Tests for next_deadline."""

    def test_unacknowledged_uses_acknowledgement_due(self, ladder):
        """Test level 0 unacknowledged tickets run on the acknowledgement clock."""
        due = NOW + timedelta(hours=24)
        ticket = make_ticket(acknowledgement_due_at=due, resolution_due_at=NOW + timedelta(days=5))

        deadline = ladder.next_deadline(ticket)
        assert deadline.due_at == due
        assert deadline.level == 1
        assert deadline.assignee == "admin-1"
        assert deadline.channel == NotifyChannel.SLACK

    def test_missing_acknowledgement_due_derived_from_created_at(self, ladder):
        """Test the fallback when no acknowledgement due date was stored."""
        deadline = ladder.next_deadline(make_ticket())
        assert deadline.due_at == NOW + timedelta(hours=24)

    def test_acknowledged_uses_resolution_due(self, ladder):
        """Test acknowledged tickets run on the TAT clock."""
        resolution_due = NOW + timedelta(days=3)
        ticket = make_ticket(acknowledged_at=NOW, resolution_due_at=resolution_due)
        assert ladder.next_deadline(ticket).due_at == resolution_due

    def test_final_ticket_has_no_deadline(self, ladder):
        """Test resolved tickets have no active deadline."""
        assert ladder.next_deadline(make_ticket(status=TicketStatus.RESOLVED)) == NO_DEADLINE

    def test_top_of_ladder_has_no_next_level(self, ladder):
        """Test the deadline at the top reports no level."""
        ticket = make_ticket(escalation_level=2, resolution_due_at=NOW)
        deadline = ladder.next_deadline(ticket)
        assert deadline.level is None
        assert deadline.due_at == NOW


class TestAdvance:
    """Tests for has_lapsed, is_due and advance."""

    def test_not_lapsed_before_deadline(self, ladder):
        """Test that nothing is due before the deadline."""
        ticket = make_ticket(acknowledgement_due_at=NOW + timedelta(hours=1))
        assert not ladder.has_lapsed(ticket, NOW)
        assert not ladder.is_due(ticket, NOW)

    def test_lapsed_exactly_at_deadline(self, ladder):
        """Test the deadline itself counts as lapsed."""
        ticket = make_ticket(acknowledgement_due_at=NOW)
        assert ladder.is_due(ticket, NOW)

    def test_advance_uses_following_level_tat(self, ladder):
        """Test level 1 gets level 2's TAT as its new due date."""
        ticket = make_ticket(acknowledgement_due_at=NOW)
        event = ladder.advance(ticket, NOW, reason="Acknowledgement deadline passed")

        assert event.kind == EscalationEventKind.AUTO_ESCALATION
        assert (event.from_level, event.to_level) == (0, 1)
        assert event.assignee == "admin-1"
        assert event.due_at == NOW + timedelta(hours=48)
        assert ticket.escalation_level == 1
        assert ticket.assigned_to == "admin-1"
        assert ticket.resolution_due_at == NOW + timedelta(hours=48)

    def test_advance_at_top_uses_own_tat(self, ladder):
        """Test the top level reuses its own TAT."""
        ticket = make_ticket(escalation_level=1, acknowledged_at=NOW, resolution_due_at=NOW)
        event = ladder.advance(ticket, NOW)

        assert event.to_level == 2
        assert event.channel == NotifyChannel.EMAIL
        assert event.due_at == NOW + timedelta(hours=48)

    def test_advance_capped_at_top(self, ladder):
        """Test advancement past the top returns None and changes nothing."""
        ticket = make_ticket(escalation_level=2, resolution_due_at=NOW)
        assert ladder.has_lapsed(ticket, NOW)
        assert not ladder.is_due(ticket, NOW)
        assert ladder.advance(ticket, NOW) is None
        assert ticket.escalation_level == 2

    def test_levels_can_skip(self):
        """Test gaps in level numbers are followed."""
        ladder = EscalationLadder([rule(1, 4), rule(3, 8)])
        ticket = make_ticket(escalation_level=1, acknowledged_at=NOW, resolution_due_at=NOW)
        assert ladder.advance(ticket, NOW).to_level == 3

    def test_three_advances_walk_every_level(self):
        """Test a fresh ticket climbs 1, 2, 3 and is then capped."""
        ladder = EscalationLadder([
            rule(1, 4, assignee="admin-1"),
            rule(2, 8, assignee="admin-2"),
            rule(3, 12, assignee="root-1"),
        ])
        ticket = make_ticket(acknowledgement_due_at=NOW)
        now = NOW

        levels = []
        for _ in range(3):
            assert ladder.has_lapsed(ticket, now)
            event = ladder.advance(ticket, now)
            levels.append(event.to_level)
            now = event.due_at

        assert levels == [1, 2, 3]
        assert ticket.assigned_to == "root-1"
        assert ticket.resolution_due_at == NOW + timedelta(hours=8 + 12 + 12)
        assert ladder.advance(ticket, now) is None

    def test_manual_advance_records_actor(self, ladder):
        """Test a manual escalation carries its kind and actor."""
        ticket = make_ticket()
        event = ladder.advance(
            ticket, NOW, reason="Escalated on request",
            kind=EscalationEventKind.MANUAL_ESCALATION, actor="student-1",
        )
        assert event.kind == EscalationEventKind.MANUAL_ESCALATION
        assert event.actor == "student-1"
        assert ticket.status == TicketStatus.ESCALATED
