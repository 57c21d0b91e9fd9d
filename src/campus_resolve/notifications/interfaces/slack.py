"""
Slack Interactions
==================

Endpoint for Slack interactive payloads: the buttons on ticket messages
and the TAT and comment modals they open.

Slack expects a 200 for every interaction; problems are reported back as
message text or modal errors rather than HTTP errors.
"""

import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from campus_resolve.access.application import AccessService
from campus_resolve.access.infrastructure.repositories import SQLAlchemyPrincipalRepository
from campus_resolve.config import Role
from campus_resolve.container import ServiceContainer
from campus_resolve.core import (
    AuthenticationException,
    DomainException,
    ResourceNotFoundException,
    ValidationException,
)
from campus_resolve.infrastructure.database import get_session
from campus_resolve.notifications.infrastructure.repositories import SQLAlchemyRecipientDirectory
from campus_resolve.notifications.infrastructure.slack import (
    SlackAction,
    SlackModal,
    build_comment_modal,
    build_input_error,
    build_result_view,
    build_tat_modal,
    parse_ticket_id,
)
from campus_resolve.shared.api.dependencies import get_container
from campus_resolve.shared.infrastructure.logging import get_logger
from campus_resolve.tickets.application import TicketService

logger = get_logger(__name__)
router = APIRouter(prefix="/slack", tags=["Slack"])

# Requests older than this are rejected as replays
MAX_REQUEST_AGE_SECONDS = 300


def verify_slack_signature(secret: str, body: bytes, timestamp: Optional[str], signature: Optional[str]) -> None:
    """Check Slack's v0 request signature. Raises AuthenticationException."""
    if not timestamp or not signature:
        raise AuthenticationException("Missing Slack signature")
    try:
        age = abs(time.time() - int(timestamp))
    except ValueError:
        raise AuthenticationException("Invalid Slack timestamp")
    if age > MAX_REQUEST_AGE_SECONDS:
        raise AuthenticationException("Stale Slack request")

    base = b"v0:" + timestamp.encode() + b":" + body
    expected = "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature):
        raise AuthenticationException("Invalid Slack signature")


def parse_payload(body: bytes) -> Dict[str, Any]:
    """Decode the form-encoded ``payload`` field."""
    form = parse_qs(body.decode("utf-8"))
    raw = form.get("payload", [None])[0]
    if not raw:
        raise ValidationException("Missing Slack payload")
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise ValidationException("Malformed Slack payload") from e
    if not isinstance(payload, dict):
        raise ValidationException("Malformed Slack payload")
    return payload


def _input_value(view: Dict[str, Any], block_id: str, action_id: str) -> str:
    values = (view.get("state") or {}).get("values") or {}
    return ((values.get(block_id) or {}).get(action_id) or {}).get("value") or ""


def _message(text: str) -> Dict[str, Any]:
    return {"response_type": "ephemeral", "replace_original": False, "text": text}


async def _handle_block_action(
    payload: Dict[str, Any],
    actor: str,
    tickets: TicketService,
    container: ServiceContainer,
) -> Dict[str, Any]:
    actions = payload.get("actions") or []
    if not actions:
        return {"text": "OK"}
    action = actions[0]
    action_id = action.get("action_id")
    if action_id == SlackAction.VIEW_WEBSITE:
        return {"text": "OK"}

    ticket_id = parse_ticket_id(action.get("value"))
    if ticket_id is None:
        logger.warning("Slack action without a ticket id", extra={"action_id": action_id})
        return _message("⚠️ Could not tell which ticket this is for.")

    if action_id == SlackAction.ACKNOWLEDGE:
        await tickets.acknowledge(ticket_id, actor)
        return _message(f"✅ Ticket #{ticket_id} acknowledged")

    if action_id == SlackAction.CLOSE:
        await tickets.close(ticket_id, actor)
        return _message(f"✅ Ticket #{ticket_id} marked as *Resolved*")

    modals = {
        SlackAction.SET_TAT: lambda: build_tat_modal(ticket_id),
        SlackAction.IN_PROGRESS: lambda: build_tat_modal(ticket_id, mark_in_progress=True),
        SlackAction.ADD_COMMENT: lambda: build_comment_modal(ticket_id),
    }
    if action_id in modals:
        await tickets.get(ticket_id)
        opened = await container.slack_client.open_view(payload.get("trigger_id", ""), modals[action_id]())
        if not opened:
            return _message("⚠️ Could not open the dialog, please try again.")
        return {"text": "OK"}

    logger.info("Ignoring unknown Slack action", extra={"action_id": action_id})
    return {"text": "OK"}


async def _handle_view_submission(
    payload: Dict[str, Any],
    actor: str,
    tickets: TicketService,
) -> Dict[str, Any]:
    view = payload.get("view") or {}
    try:
        metadata = json.loads(view.get("private_metadata") or "{}")
    except ValueError:
        metadata = {}
    ticket_id = metadata.get("ticketId")
    if not isinstance(ticket_id, int):
        raise ValidationException("Modal is missing its ticket id")

    callback_id = view.get("callback_id")
    if callback_id == SlackModal.SET_TAT:
        tat = _input_value(view, "tat_input", "tat_value").strip()
        if not tat:
            return build_input_error("tat_input", "Enter a turnaround time")
        mark_in_progress = bool(metadata.get("markInProgress"))
        try:
            await tickets.set_tat(ticket_id, tat, actor, mark_in_progress=mark_in_progress)
        except ValidationException as e:
            return build_input_error("tat_input", e.message)
        text = f"✅ TAT set to: *{tat}* for Ticket #{ticket_id}"
        if mark_in_progress:
            text += " and marked as *In Progress*"
        return build_result_view("TAT Updated", text)

    if callback_id == SlackModal.ADD_COMMENT:
        comment = _input_value(view, "comment_input", "comment_value").strip()
        if not comment:
            return build_input_error("comment_input", "Enter a comment")
        await tickets.add_comment(ticket_id, comment, actor, source="slack")
        return build_result_view("Comment Added", f"✅ Comment added to Ticket #{ticket_id}")

    logger.info("Ignoring unknown Slack modal", extra={"callback_id": callback_id})
    return {"response_action": "clear"}


@router.post("/interactions", summary="Slack interactive actions")
async def slack_interactions(
    request: Request,
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
):
    """
    Handle a button click or modal submission from Slack.

    The Slack user must be linked to a staff principal. Ticket changes go
    through the same service as the web endpoints, so notifications follow.
    """
    body = await request.body()
    secret = container.settings.slack_signing_secret
    if secret:
        verify_slack_signature(
            secret,
            body,
            request.headers.get("X-Slack-Request-Timestamp"),
            request.headers.get("X-Slack-Signature"),
        )
    payload = parse_payload(body)

    slack_user_id = (payload.get("user") or {}).get("id")
    principal = None
    if slack_user_id:
        principal = await SQLAlchemyRecipientDirectory(session).find_by_slack_user(slack_user_id)
    access = AccessService(SQLAlchemyPrincipalRepository(session), container.role_cache)
    if principal is None or not await access.has_capability(principal.external_id, Role.COMMITTEE):
        logger.warning("Slack interaction from non-staff user", extra={"slack_user_id": slack_user_id})
        return _message("⛔ Your Slack account is not linked to a staff account.")

    tickets = container.ticket_service(session)
    interaction_type = payload.get("type")
    try:
        if interaction_type == "block_actions":
            return await _handle_block_action(payload, principal.external_id, tickets, container)
        if interaction_type == "view_submission":
            return await _handle_view_submission(payload, principal.external_id, tickets)
    except (DomainException, ResourceNotFoundException, ValidationException) as e:
        logger.info(
            "Slack interaction rejected",
            extra={"type": interaction_type, "slack_user_id": slack_user_id, "error": e.message}
        )
        return _message(f"⚠️ {e.message}")
    return {"text": "OK"}


slack_router = router
