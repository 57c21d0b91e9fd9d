"""
Cron Endpoint Security
======================

Scheduled jobs call the sweep endpoints with
``Authorization: Bearer <CRON_SECRET>``.

- production: the secret must be configured and must match
- other environments: when no secret is configured the call is allowed
"""

import hmac

from fastapi import Depends, Request

from campus_resolve.container import ServiceContainer
from campus_resolve.core import AuthenticationException, ConfigurationException
from campus_resolve.shared.api.dependencies import get_container
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def verify_cron_auth(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> None:
    secret = container.settings.cron_secret

    if not secret:
        if container.settings.is_production:
            logger.error("CRON_SECRET is not configured in production")
            raise ConfigurationException("Cron secret not configured")
        logger.warning(
            "Cron endpoint called without a configured secret",
            extra={"path": request.url.path, "environment": container.settings.environment}
        )
        return

    supplied = request.headers.get("Authorization", "")
    if not hmac.compare_digest(supplied.encode(), f"Bearer {secret}".encode()):
        logger.warning(
            "Unauthorized cron request",
            extra={
                "path": request.url.path,
                "client": request.client.host if request.client else None
            }
        )
        raise AuthenticationException("Invalid cron credentials")
