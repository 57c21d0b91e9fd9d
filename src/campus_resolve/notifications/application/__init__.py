"""
Notifications Application Layer
===============================

- services: configuration resolution, dispatch and admin services
- messages: message content per notification kind
- delivery: outbox job handling
- reminders: TAT reminder sweep

Import from the modules directly.
"""
