"""
Escalation Module
=================

Bounded context for per-domain/scope escalation ladders: rule management,
deadline evaluation and the auto-escalation sweep.
"""
