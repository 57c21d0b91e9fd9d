"""Escalation application layer. Import services and the sweep from their modules."""
