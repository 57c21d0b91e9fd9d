"""Ticket interfaces layer."""

from campus_resolve.tickets.interfaces.controllers import tickets_router

__all__ = ["tickets_router"]
