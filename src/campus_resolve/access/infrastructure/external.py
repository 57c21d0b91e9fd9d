"""
Identity Provider Client
========================

Turns a bearer session token into the provider's stable user id by calling
its userinfo endpoint. A provider that cannot be reached is reported as
unavailable, never as "anonymous".
"""

from typing import Optional

import httpx

from campus_resolve.config import Settings
from campus_resolve.core import (
    AuthenticationException,
    IdentityProviderUnavailableException,
)
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class IdentityProviderClient:
    """Validates session tokens against an OpenID-style userinfo endpoint."""

    def __init__(self, app_settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self._url = app_settings.identity_provider_userinfo_url
        self._timeout = app_settings.identity_provider_timeout_seconds
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self._url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def verify(self, token: str) -> str:
        """
        Return the external user id for a session token.

        Raises:
            AuthenticationException: provider rejected the token
            IdentityProviderUnavailableException: provider unreachable or failing
        """
        client = await self._get_client()
        try:
            response = await client.get(self._url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            logger.error("Identity provider unreachable", extra={"error": str(e)})
            raise IdentityProviderUnavailableException("provider unreachable") from e

        if response.status_code in (401, 403):
            raise AuthenticationException("Session token rejected")
        if response.status_code >= 400:
            logger.error(
                "Identity provider error",
                extra={"status_code": response.status_code}
            )
            raise IdentityProviderUnavailableException(
                f"provider returned {response.status_code}"
            )

        try:
            subject = response.json().get("sub")
        except (ValueError, AttributeError) as e:
            logger.error("Identity provider returned a malformed body", extra={"error": str(e)})
            raise IdentityProviderUnavailableException("provider returned a malformed body") from e
        if not subject:
            raise AuthenticationException("Session has no subject")
        return str(subject)

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
