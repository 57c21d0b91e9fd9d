"""
Access Dependencies
===================

Request principal extraction and role guards shared by every router.
"""

from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.application import AccessService
from campus_resolve.access.infrastructure.repositories import SQLAlchemyPrincipalRepository
from campus_resolve.config import PRINCIPAL_HEADER, Role
from campus_resolve.container import ServiceContainer
from campus_resolve.core import AuthenticationException
from campus_resolve.infrastructure.database import get_session
from campus_resolve.shared.api.dependencies import get_container


async def get_access_service(
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> AccessService:
    return AccessService(SQLAlchemyPrincipalRepository(session), container.role_cache)


async def get_current_principal_id(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> str:
    """
    External id of the caller.

    With an identity provider configured the bearer token is verified
    against it; otherwise the gateway header is trusted.
    """
    identity_provider = container.identity_provider
    if identity_provider.is_configured:
        authorization = request.headers.get("Authorization", "")
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise AuthenticationException("Bearer token required")
        return await identity_provider.verify(token)

    principal_id = request.headers.get(PRINCIPAL_HEADER)
    if not principal_id:
        raise AuthenticationException("Not authenticated")
    return principal_id


def require_role(role: Role) -> Callable:
    """Dependency factory: the caller's role must be at least ``role``."""

    async def guard(
        principal_id: str = Depends(get_current_principal_id),
        access: AccessService = Depends(get_access_service),
    ) -> str:
        await access.require(principal_id, role)
        return principal_id

    return guard
