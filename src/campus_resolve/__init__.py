"""
Campus Resolve
==============

Ticket routing, escalation and notification engine for an institution's
support desk.

Bounded contexts:
- access: principals, roles and domain/scope grants
- assignment: single point of contact (SPOC) resolution
- escalation: per-domain/scope escalation ladders and the auto-escalation sweep
- notifications: channel configuration, dispatch outbox and reminder sweep
- tickets: the ticket mutations that drive all of the above
"""

__version__ = "1.0.0"
