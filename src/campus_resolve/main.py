"""
Campus Resolve - Main Application
=================================

Ticket routing, escalation and notification engine for campus support desks.

Modules:
- Access: roles, domain/scope grants and the role cache
- Assignment: SPOC resolution for new tickets
- Tickets: creation and staff actions
- Escalation: ladders, deadlines and the auto-escalation sweep
- Notifications: configuration resolution, Slack/email delivery, reminders

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, Slack, email, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

# Configuration and Core
from campus_resolve.config import OPTIONAL_SURFACES, settings
from campus_resolve.core import ApplicationException

# Infrastructure
from campus_resolve.container import build_container
from campus_resolve.infrastructure.database import close_database, create_tables, get_engine, init_database

# Module Routers
from campus_resolve.access.interfaces import access_router
from campus_resolve.escalation.interfaces import escalation_cron_router, escalation_router
from campus_resolve.notifications.interfaces import (
    notification_config_router,
    notification_cron_router,
    notification_settings_router,
    slack_router,
)
from campus_resolve.tickets.interfaces import tickets_router

# Middleware and Logging
from campus_resolve.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from campus_resolve.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (and tables outside production)
    3. Build the service container (defaults, Slack, email, outbox)
    4. Negotiate optional schema surfaces
    5. Start the outbox worker, defaults watcher and escalation scheduler

    SHUTDOWN:
    1. Stop the scheduler and drain the outbox
    2. Close outbound clients
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Campus Resolve", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database(settings)

    if not settings.is_production:
        # Deployments migrate their schema separately
        try:
            await create_tables()
        except Exception as e:
            logger.warning(f"Database not available - running in degraded mode: {e}")

    container = build_container(settings)
    app.state.container = container

    capabilities = await container.schema_probe.negotiate(OPTIONAL_SURFACES)
    logger.info("Schema capabilities negotiated", extra={"capabilities": capabilities})

    await container.start()
    logger.info("Campus Resolve started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Campus Resolve")
    await container.stop()
    await close_database()
    logger.info("Campus Resolve shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, handlers and routers."""
    application = FastAPI(
        title="Campus Resolve API",
        description="""
    ## Campus Support Ticket Engine

    Routes tickets to a single point of contact, escalates them along
    configurable ladders and notifies staff over Slack and email.

    - `POST /tickets` - Raise a ticket
    - `GET /tickets/{id}` - Ticket with its next escalation deadline
    - `POST /tickets/{id}/escalate` - Manual escalation
    - `/escalation-rules` - Escalation ladder administration
    - `/notification-config`, `/notification-settings` - Notification routing
    - `GET /cron/auto-escalate`, `GET /cron/remind-spocs` - Scheduled sweeps
    - `POST /slack/interactions` - Slack buttons and modals
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.add_middleware(LoggingMiddleware)
    application.add_middleware(CorrelationIDMiddleware)
    application.add_exception_handler(ApplicationException, application_exception_handler)
    application.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    application.include_router(access_router)
    application.include_router(tickets_router)
    application.include_router(escalation_router)
    application.include_router(escalation_cron_router)
    application.include_router(notification_config_router)
    application.include_router(notification_settings_router)
    application.include_router(notification_cron_router)
    application.include_router(slack_router)

    application.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    application.add_api_route("/", root, methods=["GET"], tags=["Root"])
    return application


async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Returns database connectivity, the negotiated schema capabilities,
    outbox counters and scheduler state.
    """
    checks = {"database": "connected"}
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = f"error: {e}"

    container = getattr(request.app.state, "container", None)
    if container is not None:
        checks.update(container.health())

    return {
        "status": "healthy" if checks["database"] == "connected" else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


async def root():
    """Root endpoint with API information."""
    return {
        "service": "Campus Resolve",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health"
    }


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "campus_resolve.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
