"""Ticket domain layer."""

from campus_resolve.tickets.domain.entities import Ticket, TicketContext
from campus_resolve.tickets.domain.tat import parse_tat, calculate_tat_date

__all__ = ["Ticket", "TicketContext", "parse_tat", "calculate_tat_date"]
