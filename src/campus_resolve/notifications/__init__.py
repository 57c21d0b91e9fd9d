"""
Notifications Module
====================

Resolves which channels and recipients a ticket notification goes to,
delivers it through Slack and email, and runs TAT reminders.
"""
