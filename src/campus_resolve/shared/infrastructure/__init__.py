"""Shared infrastructure: structured logging."""

from campus_resolve.shared.infrastructure.logging import (
    setup_logging,
    get_logger,
    log_latency,
)

__all__ = ["setup_logging", "get_logger", "log_latency"]
