"""
Slack Client
============

Slack Web API client for ticket notifications and interactive actions.

- ``chat.postMessage`` for channel posts and thread replies
- ``views.open`` for the TAT and comment modals
- Circuit breaker and exponential backoff retry around every call
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from campus_resolve.config import Settings, settings
from campus_resolve.notifications.application.services import ISlackGateway
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Interactive Identifiers ==========

class SlackAction:
    """``action_id`` values of the buttons attached to ticket messages."""
    VIEW_WEBSITE = "ticket_view_website"
    ACKNOWLEDGE = "ticket_acknowledge"
    IN_PROGRESS = "ticket_in_progress"
    SET_TAT = "ticket_set_tat"
    ADD_COMMENT = "ticket_add_comment"
    CLOSE = "ticket_close"


class SlackModal:
    """``callback_id`` values of the modals."""
    SET_TAT = "set_tat_modal"
    ADD_COMMENT = "add_comment_modal"


def parse_ticket_id(value: Optional[str]) -> Optional[int]:
    """Ticket id from a button value such as ``set_tat_42``."""
    if not value:
        return None
    tail = value.rsplit("_", 1)[-1]
    return int(tail) if tail.isdigit() else None


# ========== Block Kit Builders ==========

def _button(text: str, action_id: str, value: str, style: Optional[str] = None) -> Dict[str, Any]:
    button = {
        "type": "button",
        "text": {"type": "plain_text", "text": text, "emoji": True},
        "action_id": action_id,
        "value": value,
    }
    if style:
        button["style"] = style
    return button


def build_ticket_blocks(text: str, ticket_id: int, base_url: str) -> List[Dict[str, Any]]:
    """Message body plus the staff action buttons."""
    return [
        {"type": "section", "text": {"type": "mrkdwn", "text": text}},
        {
            "type": "actions",
            "block_id": f"ticket_actions_{ticket_id}",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "View on website", "emoji": True},
                    "action_id": SlackAction.VIEW_WEBSITE,
                    "url": f"{base_url.rstrip('/')}/admin/dashboard/ticket/{ticket_id}",
                },
                _button("Acknowledge", SlackAction.ACKNOWLEDGE, f"acknowledge_{ticket_id}", "primary"),
                _button("Mark In Progress", SlackAction.IN_PROGRESS, f"in_progress_{ticket_id}"),
                _button("Set TAT", SlackAction.SET_TAT, f"set_tat_{ticket_id}"),
                _button("Add Comment", SlackAction.ADD_COMMENT, f"add_comment_{ticket_id}"),
                _button("Close", SlackAction.CLOSE, f"close_{ticket_id}", "danger"),
            ],
        },
    ]


def build_tat_modal(ticket_id: int, mark_in_progress: bool = False) -> Dict[str, Any]:
    return {
        "type": "modal",
        "callback_id": SlackModal.SET_TAT,
        "private_metadata": json.dumps({"ticketId": ticket_id, "markInProgress": mark_in_progress}),
        "title": {"type": "plain_text", "text": f"Set TAT #{ticket_id}"},
        "submit": {"type": "plain_text", "text": "Save"},
        "close": {"type": "plain_text", "text": "Cancel"},
        "blocks": [
            {
                "type": "input",
                "block_id": "tat_input",
                "label": {"type": "plain_text", "text": "Turnaround time"},
                "element": {
                    "type": "plain_text_input",
                    "action_id": "tat_value",
                    "placeholder": {"type": "plain_text", "text": "e.g. 2 days, 1 week, tomorrow"},
                },
            }
        ],
    }


def build_comment_modal(ticket_id: int) -> Dict[str, Any]:
    return {
        "type": "modal",
        "callback_id": SlackModal.ADD_COMMENT,
        "private_metadata": json.dumps({"ticketId": ticket_id}),
        "title": {"type": "plain_text", "text": f"Comment #{ticket_id}"},
        "submit": {"type": "plain_text", "text": "Add"},
        "close": {"type": "plain_text", "text": "Cancel"},
        "blocks": [
            {
                "type": "input",
                "block_id": "comment_input",
                "label": {"type": "plain_text", "text": "Comment"},
                "element": {"type": "plain_text_input", "action_id": "comment_value", "multiline": True},
            }
        ],
    }


def build_result_view(title: str, text: str) -> Dict[str, Any]:
    """Modal update shown after a successful submission."""
    return {
        "response_action": "update",
        "view": {
            "type": "modal",
            "title": {"type": "plain_text", "text": title[:24]},
            "blocks": [{"type": "section", "text": {"type": "mrkdwn", "text": text}}],
        },
    }


def build_input_error(block_id: str, message: str) -> Dict[str, Any]:
    return {"response_action": "errors", "errors": {block_id: message}}


# ========== Resilience ==========

class CircuitState:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Stops calling Slack after consecutive failed calls.

    A call counts as failed once all its retries are spent. After
    ``failure_threshold`` of them the circuit opens and calls are skipped
    for ``recovery_timeout`` seconds. The next call is then let through as a
    trial: success closes the circuit, failure reopens it for another
    timeout. Only one trial is in flight at a time.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
        return self._state

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("Slack circuit closed")
        self._consecutive_failures = 0
        self._state = CircuitState.CLOSED
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        if self._state == CircuitState.HALF_OPEN or self._consecutive_failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            self._trial_in_flight = False
            logger.warning(
                "Slack circuit opened",
                extra={"failures": self._consecutive_failures, "retry_in_seconds": self.recovery_timeout}
            )


# Slack errors that retrying cannot fix
PERMANENT_ERRORS = {
    "channel_not_found", "not_in_channel", "invalid_auth", "not_authed",
    "account_inactive", "is_archived", "invalid_blocks", "expired_trigger_id",
}


class SlackClient(ISlackGateway):
    """
    Slack Web API client with circuit breaker and retry logic.

    Never raises: failures are logged and reported as None/False.
    """

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        max_retries: int = 3,
        circuit_breaker: Optional[CircuitBreaker] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        app_settings = app_settings or settings
        self._token = app_settings.slack_bot_token
        self._api_url = app_settings.slack_api_url.rstrip("/")
        self._timeout = app_settings.slack_timeout_seconds
        self._base_url = app_settings.public_base_url
        self._max_retries = max_retries
        self._circuit_breaker = circuit_breaker or CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    @property
    def is_configured(self) -> bool:
        return bool(self._token)

    @property
    def circuit_state(self) -> str:
        return self._circuit_breaker.state

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def _call(self, method: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Call a Web API method.

        Returns:
            The decoded response when Slack answered ``ok``, otherwise None
        """
        if not self.is_configured:
            logger.debug("Slack bot token not configured, skipping", extra={"method": method})
            return None

        if not self._circuit_breaker.allow_request():
            logger.warning("Slack circuit open, skipping call", extra={"method": method})
            return None

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json; charset=utf-8",
        }
        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(f"{self._api_url}/{method}", json=payload, headers=headers)

                if response.status_code == 200:
                    body = response.json()
                    if body.get("ok"):
                        self._circuit_breaker.record_success()
                        return body
                    error = body.get("error", "unknown_error")
                    logger.warning(
                        "Slack API returned an error",
                        extra={"method": method, "error": error, "attempt": attempt + 1}
                    )
                    if error in PERMANENT_ERRORS:
                        # Slack answered; the call is not retried but the circuit stays closed
                        self._circuit_breaker.record_success()
                        return None
                else:
                    logger.warning(
                        "Slack API returned non-200",
                        extra={"method": method, "status_code": response.status_code, "attempt": attempt + 1}
                    )

            except (httpx.HTTPError, ValueError, AttributeError) as e:
                logger.error(
                    "Slack API call failed",
                    extra={"method": method, "error": str(e), "attempt": attempt + 1}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return None

    async def post_message(
        self,
        channel: str,
        text: str,
        thread_ts: Optional[str] = None,
        mentions: Sequence[str] = (),
        ticket_id: Optional[int] = None,
    ) -> Optional[str]:
        """
        Post to a channel, or reply in a thread when ``thread_ts`` is given.

        Args:
            channel: Channel name or id
            text: mrkdwn message text
            thread_ts: Parent message ts for thread replies
            mentions: Slack user ids appended as a CC line
            ticket_id: When given, the staff action buttons are attached

        Returns:
            The ts of the posted message, or None
        """
        if mentions:
            text = f"{text}\nCC: " + " ".join(f"<@{user_id}>" for user_id in mentions)

        payload: Dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        if ticket_id is not None:
            payload["blocks"] = build_ticket_blocks(text, ticket_id, self._base_url)

        body = await self._call("chat.postMessage", payload)
        if body is None:
            return None
        logger.info(
            "Slack message posted",
            extra={"channel": channel, "ticket_id": ticket_id, "thread": bool(thread_ts)}
        )
        return body.get("ts")

    async def open_view(self, trigger_id: str, view: Dict[str, Any]) -> bool:
        """Open a modal in response to a button click."""
        body = await self._call("views.open", {"trigger_id": trigger_id, "view": view})
        return body is not None

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
