"""
Email Client
============

Transactional email through the Brevo HTTP API, no SDK required.
"""

import html
from typing import Any, Dict, Optional

import httpx

from campus_resolve.config import Settings, settings
from campus_resolve.notifications.application.services import IEmailGateway
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _failure(error: str, status_code: Optional[int] = None) -> Dict[str, Any]:
    return {"success": False, "error": error, "status_code": status_code, "message_id": None}


class EmailClient(IEmailGateway):
    """Sends transactional email via Brevo."""

    def __init__(self, app_settings: Optional[Settings] = None):
        app_settings = app_settings or settings
        self.api_key = app_settings.email_api_key
        self.api_url = app_settings.email_api_url
        self.from_address = app_settings.email_from_address
        self.from_name = app_settings.email_from_name
        self.timeout = app_settings.email_timeout_seconds
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.from_address)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email.

        Args:
            to: Recipient email address
            subject: Subject line
            body: Plain text body
            html_body: Optional HTML body; the plain text is wrapped when omitted
            reply_to: Optional reply-to address

        Returns:
            Dict with success, status_code, message_id and, on failure, error
        """
        if not self.is_configured:
            logger.debug("Email not configured, skipping", extra={"to": to})
            return _failure("Email API key or sender not configured")

        payload: Dict[str, Any] = {
            "sender": {"name": self.from_name, "email": self.from_address},
            "to": [{"email": to}],
            "subject": subject,
            "textContent": body,
            "htmlContent": html_body or (
                "<html><body><p>" + html.escape(body).replace("\n", "<br>") + "</p></body></html>"
            ),
        }
        if reply_to:
            payload["replyTo"] = {"email": reply_to}

        headers = {
            "accept": "application/json",
            "api-key": self.api_key,
            "content-type": "application/json",
        }

        try:
            client = await self._get_client()
            response = await client.post(self.api_url, json=payload, headers=headers)
        except httpx.TimeoutException:
            logger.error("Email API request timed out", extra={"to": to})
            return _failure("Email API request timed out")
        except httpx.HTTPError as e:
            logger.error("Email API request failed", extra={"to": to, "error": str(e)})
            return _failure(str(e))

        if response.status_code in (200, 201):
            message_id = response.json().get("messageId")
            logger.info(
                "Email sent",
                extra={"to": to, "subject": subject[:50], "message_id": message_id}
            )
            return {"success": True, "status_code": response.status_code, "message_id": message_id}

        logger.error(
            "Email API error",
            extra={"to": to, "status_code": response.status_code, "error": response.text[:500]}
        )
        return _failure(f"Email API error: {response.text}", response.status_code)

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
