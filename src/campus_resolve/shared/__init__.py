"""
Shared Kernel Module
====================

Generic infrastructure used by every bounded context: structured logging,
middleware, request security and the schema capability probe.

DO NOT add routing, escalation or notification rules to the shared kernel.
"""
