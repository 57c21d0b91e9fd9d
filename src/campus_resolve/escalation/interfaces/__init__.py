"""Escalation interfaces layer."""

from campus_resolve.escalation.interfaces.controllers import escalation_cron_router, escalation_router

__all__ = ["escalation_router", "escalation_cron_router"]
