"""Access interfaces layer."""

from campus_resolve.access.interfaces.controllers import access_router

__all__ = ["access_router"]
