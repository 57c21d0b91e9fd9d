"""
Shared API Middleware
======================

Request correlation, request logging and exception handlers.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from campus_resolve.config import PRINCIPAL_HEADER
from campus_resolve.core import ApplicationException
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Propagates or assigns an X-Correlation-ID for every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))
        request.state.correlation_id = correlation_id

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per request with status and latency.

    Health probes are not logged. The gateway principal header is recorded
    when present so staff actions can be traced to a caller.
    """

    QUIET_PATHS = frozenset({"/health", "/"})

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        context = {
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "principal": request.headers.get(PRINCIPAL_HEADER),
        }

        try:
            response = await call_next(request)
        except Exception as e:
            context["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
            logger.error("Request failed", extra={**context, "error": str(e)})
            raise

        context["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
        log = logger.warning if response.status_code >= 500 else logger.info
        log("Request handled", extra={**context, "status_code": response.status_code})
        return response


async def application_exception_handler(
    request: Request, exc: ApplicationException
) -> JSONResponse:
    """Maps the application exception taxonomy to HTTP responses."""
    correlation_id = getattr(request.state, "correlation_id", "unknown")
    status_code = getattr(exc, "status_code", 500)

    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request rejected",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": status_code
        }
    )

    headers = {"Retry-After": "30"} if status_code == 503 else None
    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "error": type(exc).__name__,
            "details": exc.details,
            "correlation_id": correlation_id
        },
        headers=headers
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Internal details are only echoed back in development.
    """
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        }
    )

    container = getattr(request.app.state, "container", None)
    is_dev = container is not None and container.settings.environment == "development"

    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "correlation_id": correlation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "debug_info": str(exc) if is_dev else None
        }
    )
