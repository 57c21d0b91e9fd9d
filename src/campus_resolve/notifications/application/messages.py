"""
Notification Messages
=====================

Channel-neutral message content for each notification kind.

Creation, escalation and reminders go to the assignee; status changes,
comments and TAT updates go to the ticket creator. Slack posts after
creation reply in the creation message's thread.
"""

from typing import Any, Dict, List, Optional, Tuple

from campus_resolve.config import NotificationKind, STATUS_DEFINITIONS, TicketStatus
from campus_resolve.notifications.domain import NotificationMessage, Recipient
from campus_resolve.tickets.domain import TicketContext

# Kinds addressed to the assignee rather than the creator
ASSIGNEE_KINDS = (NotificationKind.TICKET_CREATED, NotificationKind.ESCALATED, NotificationKind.REMINDER)


def _status_label(value: Optional[str]) -> str:
    try:
        return STATUS_DEFINITIONS[TicketStatus(value)].label
    except ValueError:
        return str(value)


def _category_line(context: TicketContext) -> str:
    line = f"Category: {context.category_name or 'General'}"
    if context.subcategory_name:
        line += f" → {context.subcategory_name}"
    return line


def _created(context: TicketContext, details: Dict[str, Any], creator: Optional[Recipient]) -> Tuple[str, List[str]]:
    ticket = context.ticket
    lines = [
        "🆕 New Ticket Raised",
        f"*Ticket ID:* #{ticket.id}",
        _category_line(context),
    ]
    if context.routing_scope:
        lines.append(f"Location: {context.routing_scope}")
    if creator and creator.full_name:
        lines.append(f"User: {creator.full_name}")
    if creator and creator.email:
        lines.append(f"Contact: {creator.email}")
    if ticket.description:
        lines.append(f"Description: {ticket.description}")
    lines.append(f"Status: {_status_label(ticket.status.value)}")
    return f"Ticket #{ticket.id} Created - {context.category_name or 'General'}", lines


def _status_changed(context: TicketContext, details: Dict[str, Any], creator: Optional[Recipient]) -> Tuple[str, List[str]]:
    ticket = context.ticket
    label = _status_label(details.get("status", ticket.status.value))
    lines = [f"🔄 Ticket #{ticket.id} is now *{label}*"]
    if details.get("actor"):
        lines.append(f"Updated by: {details['actor']}")
    return f"Ticket #{ticket.id} - Status Updated to {label}", lines


def _comment_added(context: TicketContext, details: Dict[str, Any], creator: Optional[Recipient]) -> Tuple[str, List[str]]:
    ticket = context.ticket
    comment = details.get("comment") or {}
    lines = [f"💬 New comment on Ticket #{ticket.id}", comment.get("text", "")]
    if details.get("actor"):
        lines.append(f"By: {details['actor']}")
    return f"New Comment on Ticket #{ticket.id}", lines


def _tat_set(context: TicketContext, details: Dict[str, Any], creator: Optional[Recipient]) -> Tuple[str, List[str]]:
    ticket = context.ticket
    title = "TAT Extended" if details.get("extension") else "TAT Set"
    lines = [f"⏱️ {title} for Ticket #{ticket.id}: *{details.get('tat', ticket.tat)}*"]
    if details.get("due_at"):
        lines.append(f"Due: {details['due_at']}")
    if details.get("extension"):
        lines.append(f"Extensions so far: {details.get('extension_count', ticket.tat_extended_count)}")
    return f"{title} - Ticket #{ticket.id}", lines


def _escalated(context: TicketContext, details: Dict[str, Any], creator: Optional[Recipient]) -> Tuple[str, List[str]]:
    ticket = context.ticket
    lines = [
        f"🚨 Ticket #{ticket.id} escalated to level {details.get('to_level', ticket.escalation_level)}",
        _category_line(context),
    ]
    if details.get("reason"):
        lines.append(f"Reason: {details['reason']}")
    if details.get("due_at"):
        lines.append(f"New deadline: {details['due_at']}")
    return f"Ticket #{ticket.id} Escalated", lines


def _reminder(context: TicketContext, details: Dict[str, Any], creator: Optional[Recipient]) -> Tuple[str, List[str]]:
    ticket = context.ticket
    lines = [
        f"⏰ Reminder: Ticket #{ticket.id} needs attention",
        _category_line(context),
        f"Reason: {details.get('reason', '')}",
    ]
    return f"TAT Reminder - Ticket #{ticket.id}", lines


_BUILDERS = {
    NotificationKind.TICKET_CREATED: _created,
    NotificationKind.STATUS_CHANGED: _status_changed,
    NotificationKind.COMMENT_ADDED: _comment_added,
    NotificationKind.TAT_SET: _tat_set,
    NotificationKind.ESCALATED: _escalated,
    NotificationKind.REMINDER: _reminder,
}


def build_message(
    kind: NotificationKind,
    context: TicketContext,
    details: Optional[Dict[str, Any]] = None,
    assignee: Optional[Recipient] = None,
    creator: Optional[Recipient] = None,
) -> NotificationMessage:
    """
    Message for one notification.

    Args:
        kind: What happened
        context: Ticket with routing names
        details: Kind-specific values (status, comment, TAT, levels, reason)
        assignee: Contact details of the current assignee
        creator: Contact details of the ticket creator

    Returns:
        The message; Slack posts for anything but creation are thread
        replies when the ticket has a linked Slack thread
    """
    details = details or {}
    subject, lines = _BUILDERS[kind](context, details, creator)
    target = assignee if kind in ASSIGNEE_KINDS else creator

    thread_channel, thread_ts = context.ticket.slack_thread
    is_creation = kind == NotificationKind.TICKET_CREATED

    mentions: Tuple[str, ...] = ()
    if kind in ASSIGNEE_KINDS and assignee and assignee.slack_user_id:
        mentions = (assignee.slack_user_id,)

    return NotificationMessage(
        kind=kind,
        ticket_id=context.ticket.id,
        subject=subject,
        text="\n".join(line for line in lines if line),
        slack_channel=None if is_creation else thread_channel,
        slack_thread_ts=None if is_creation else thread_ts,
        slack_mentions=mentions,
        email_to=(target.email,) if target and target.email else (),
        interactive=is_creation,
    )
