"""FastAPI dependencies for process-wide collaborators."""

from typing import TYPE_CHECKING

from fastapi import Request

from campus_resolve.core import ConfigurationException

if TYPE_CHECKING:
    from campus_resolve.container import ServiceContainer


def get_container(request: Request) -> "ServiceContainer":
    """The ServiceContainer built by the lifespan (or the serverless entry point)."""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise ConfigurationException("Service container not initialized")
    return container
