"""Tests for message building and channel dispatch."""

import pytest

from campus_resolve.config import NotificationKind, TicketStatus
from campus_resolve.notifications.application.messages import build_message
from campus_resolve.notifications.application.services import NotificationDispatcher
from campus_resolve.notifications.domain import NotificationConfig, NotificationMessage, Recipient

from factories import FakeEmailClient, FakeSlackClient, make_context, make_ticket

SPOC = Recipient(external_id="spoc-1", email="spoc@campus.test", slack_user_id="U_SPOC", full_name="Spoc One")
STUDENT = Recipient(external_id="student-1", email="student@campus.test", full_name="Student One")


def config(**overrides) -> NotificationConfig:
    values = {"enable_slack": True, "enable_email": True, "slack_channel": "#north-tower"}
    values.update(overrides)
    return NotificationConfig(**values)


def message(**overrides) -> NotificationMessage:
    values = {
        "kind": NotificationKind.TICKET_CREATED,
        "ticket_id": 1,
        "subject": "Ticket #1 Created - Hostel",
        "text": "New ticket",
        "slack_mentions": ("U_SPOC",),
        "email_to": ("spoc@campus.test",),
        "interactive": True,
    }
    values.update(overrides)
    return NotificationMessage(**values)


class TestBuildMessage:
    """Tests for build_message."""

    def test_creation_goes_to_assignee_with_buttons(self):
        """Test a creation message mentions and emails the SPOC."""
        context = make_context(make_ticket(description="Leaking tap"), subcategory_name="Plumbing")
        msg = build_message(NotificationKind.TICKET_CREATED, context, assignee=SPOC, creator=STUDENT)

        assert msg.subject == "Ticket #1 Created - Hostel"
        assert "🆕 New Ticket Raised" in msg.text
        assert "Category: Hostel → Plumbing" in msg.text
        assert "Location: North Tower" in msg.text
        assert "Contact: student@campus.test" in msg.text
        assert msg.slack_mentions == ("U_SPOC",)
        assert msg.email_to == ("spoc@campus.test",)
        assert msg.interactive
        assert msg.slack_thread_ts is None

    def test_status_change_goes_to_creator_in_thread(self):
        """Test later messages reply in the creation thread."""
        ticket = make_ticket(status=TicketStatus.IN_PROGRESS)
        ticket.link_slack_thread("#north-tower", "111.222")
        msg = build_message(
            NotificationKind.STATUS_CHANGED, make_context(ticket),
            {"status": "in_progress", "actor": "spoc-1"},
            assignee=SPOC, creator=STUDENT,
        )

        assert "*In Progress*" in msg.text
        assert msg.email_to == ("student@campus.test",)
        assert msg.slack_mentions == ()
        assert (msg.slack_channel, msg.slack_thread_ts) == ("#north-tower", "111.222")
        assert not msg.interactive

    def test_tat_extension_wording(self):
        """Test TAT extension messages carry the extension count."""
        msg = build_message(
            NotificationKind.TAT_SET, make_context(),
            {"tat": "1 week", "extension": True, "extension_count": 2},
            creator=STUDENT,
        )
        assert msg.subject == "TAT Extended - Ticket #1"
        assert "Extensions so far: 2" in msg.text

    def test_reminder_without_assignee_email(self):
        """Test a reminder to an assignee without email has no recipients."""
        assignee = Recipient(external_id="spoc-1", slack_user_id="U_SPOC")
        msg = build_message(NotificationKind.REMINDER, make_context(), {"reason": "Ticket not acknowledged"},
                            assignee=assignee)
        assert msg.email_to == ()
        assert msg.slack_mentions == ("U_SPOC",)
        assert "Reason: Ticket not acknowledged" in msg.text


class TestDispatcher:
    """Tests for NotificationDispatcher.notify."""

    @pytest.mark.asyncio
    async def test_delivers_on_both_channels(self):
        """Test Slack and email both deliver."""
        slack, email = FakeSlackClient(), FakeEmailClient()
        result = await NotificationDispatcher(slack, email).notify(config(), message())

        assert result.ok
        assert result.delivered == ["slack", "email"]
        assert result.slack_channel == "#north-tower"
        assert result.slack_ts is not None
        assert slack.messages[0]["ticket_id"] == 1
        assert email.sent[0]["to"] == "spoc@campus.test"

    @pytest.mark.asyncio
    async def test_mentions_and_recipients_deduplicated(self):
        """Test CC lists merge with message targets without duplicates."""
        slack, email = FakeSlackClient(), FakeEmailClient()
        cfg = config(slack_cc_user_ids=("U_SPOC", "U_LEAD"), email_recipients=("spoc@campus.test", "desk@campus.test"))
        await NotificationDispatcher(slack, email).notify(cfg, message())

        assert slack.messages[0]["mentions"] == ("U_SPOC", "U_LEAD")
        assert [m["to"] for m in email.sent] == ["spoc@campus.test", "desk@campus.test"]

    @pytest.mark.asyncio
    async def test_slack_failure_does_not_stop_email(self):
        """Test channels are isolated from each other."""
        slack, email = FakeSlackClient(fail=True), FakeEmailClient()
        result = await NotificationDispatcher(slack, email).notify(config(), message())

        assert result.delivered == ["email"]
        assert "slack" in result.failures
        assert len(email.sent) == 1

    @pytest.mark.asyncio
    async def test_partial_email_failure(self):
        """Test one rejected recipient still counts email as delivered."""
        email = FakeEmailClient(failing=["desk@campus.test"])
        cfg = config(enable_slack=False, email_recipients=("desk@campus.test",))
        result = await NotificationDispatcher(FakeSlackClient(), email).notify(cfg, message())

        assert result.delivered == ["email"]
        assert result.failures["email"] == "failed for 1 of 2 recipients"
        assert "slack" in result.skipped

    @pytest.mark.asyncio
    async def test_nothing_to_send(self):
        """Test no channel and no recipients is skipped, not failed."""
        result = await NotificationDispatcher(FakeSlackClient(), FakeEmailClient()).notify(
            config(slack_channel=None), message(email_to=())
        )
        assert result.ok
        assert result.delivered == []
        assert result.skipped == ["slack", "email"]

    @pytest.mark.asyncio
    async def test_thread_channel_overrides_config(self):
        """Test thread replies go to the thread's channel."""
        slack = FakeSlackClient()
        await NotificationDispatcher(slack, FakeEmailClient()).notify(
            config(enable_email=False),
            message(slack_channel="#old-channel", slack_thread_ts="111.222", interactive=False),
        )
        assert slack.messages[0]["channel"] == "#old-channel"
        assert slack.messages[0]["thread_ts"] == "111.222"
        assert slack.messages[0]["ticket_id"] is None
