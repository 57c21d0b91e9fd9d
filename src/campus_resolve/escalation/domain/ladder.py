"""
Escalation Ladder
=================

Ordered rules for one (domain, scope) partition.

A ticket starts at level 0. While unacknowledged at level 0 the active
deadline is the acknowledgement due date; afterwards it is the resolution
due date. When the active deadline lapses the ticket moves to the next
configured level, takes that level's assignee (if any) and gets a new
due date from the TAT of the level that would fire after it. At the top
of the ladder the due date uses the top level's own TAT and further
advancement is capped.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from campus_resolve.config import EscalationEventKind
from campus_resolve.core import utcnow
from campus_resolve.escalation.domain.entities import Deadline, EscalationEvent, EscalationRule
from campus_resolve.tickets.domain import Ticket

NO_DEADLINE = Deadline(due_at=None, level=None, channel=None, assignee=None)


class EscalationLadder:
    """Immutable, level-sorted view over a partition's rules."""

    def __init__(self, rules: Iterable[EscalationRule], default_acknowledgement_hours: int = 24):
        by_level: Dict[int, EscalationRule] = {}
        # Scoped rules sort after domain-wide ones and overwrite them
        for rule in sorted(rules, key=lambda r: (r.level, r.is_scoped)):
            by_level[rule.level] = rule
        self._rules: List[EscalationRule] = [by_level[level] for level in sorted(by_level)]
        self._default_acknowledgement_hours = default_acknowledgement_hours

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> List[EscalationRule]:
        return list(self._rules)

    @property
    def top_level(self) -> int:
        return self._rules[-1].level if self._rules else 0

    def rule_for_level(self, level: int) -> Optional[EscalationRule]:
        for rule in self._rules:
            if rule.level == level:
                return rule
        return None

    def next_rule(self, current_level: int) -> Optional[EscalationRule]:
        """First rule strictly above ``current_level``."""
        for rule in self._rules:
            if rule.level > current_level:
                return rule
        return None

    def acknowledgement_window(self) -> timedelta:
        """Time a new ticket has before level 1 fires."""
        if self._rules:
            return timedelta(hours=self._rules[0].tat_hours)
        return timedelta(hours=self._default_acknowledgement_hours)

    def _active_due_at(self, ticket: Ticket) -> Optional[datetime]:
        if ticket.escalation_level == 0 and not ticket.is_acknowledged:
            if ticket.acknowledgement_due_at is not None:
                return ticket.acknowledgement_due_at
            return ticket.created_at + self.acknowledgement_window()
        return ticket.resolution_due_at

    def next_deadline(self, ticket: Ticket) -> Deadline:
        """Active deadline plus the rule that fires when it lapses."""
        if ticket.is_final:
            return NO_DEADLINE
        rule = self.next_rule(ticket.escalation_level)
        return Deadline(
            due_at=self._active_due_at(ticket),
            level=rule.level if rule else None,
            channel=rule.notify_channel if rule else None,
            assignee=rule.assignee if rule else None,
        )

    def has_lapsed(self, ticket: Ticket, now: Optional[datetime] = None) -> bool:
        """True when the active deadline has passed, whether or not a level remains."""
        return self.next_deadline(ticket).has_lapsed(now or utcnow())

    def is_due(self, ticket: Ticket, now: Optional[datetime] = None) -> bool:
        """True when the deadline has lapsed and there is a level to move to."""
        return self.has_lapsed(ticket, now) and self.next_rule(ticket.escalation_level) is not None

    def advance(
        self,
        ticket: Ticket,
        now: Optional[datetime] = None,
        reason: Optional[str] = None,
        kind: EscalationEventKind = EscalationEventKind.AUTO_ESCALATION,
        actor: Optional[str] = None,
    ) -> Optional[EscalationEvent]:
        """
        Move ``ticket`` one level up the ladder.

        Args:
            ticket: Ticket to mutate in place
            now: Advancement time (defaults to the current time)
            reason: Free-text reason stored on the event
            kind: Automatic or manual escalation
            actor: Principal who asked for a manual escalation

        Returns:
            The escalation event, or None when the ladder is exhausted
        """
        now = now or utcnow()
        rule = self.next_rule(ticket.escalation_level)
        if rule is None:
            return None

        following = self.next_rule(rule.level)
        due_at = now + timedelta(hours=(following or rule).tat_hours)
        from_level = ticket.escalation_level

        ticket.escalate(rule.level, rule.assignee, due_at, at=now)

        return EscalationEvent(
            ticket_id=ticket.id,
            kind=kind,
            from_level=from_level,
            to_level=rule.level,
            occurred_at=now,
            assignee=ticket.assigned_to,
            channel=rule.notify_channel,
            due_at=due_at,
            reason=reason,
            actor=actor,
        )
