"""Escalation infrastructure layer."""
