"""
Notifications Infrastructure Layer
==================================

- models: notification_config and notification_settings
- repositories: SQLAlchemy repositories and the recipient directory
- slack / email: outbound channel clients
- defaults: hot-reloaded YAML defaults
- outbox: in-process delivery queue
"""
