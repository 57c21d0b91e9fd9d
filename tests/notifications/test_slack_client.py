"""Tests for the Slack Web API client and its circuit breaker."""

import json

import httpx
import pytest

from campus_resolve.config import Settings
from campus_resolve.notifications.infrastructure.slack import CircuitBreaker, CircuitState, SlackClient


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=clock)


class TestCircuitBreaker:
    """Tests for CircuitBreaker state changes."""

    def test_starts_closed(self, breaker):
        """Test a new breaker lets calls through."""
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()

    def test_opens_at_threshold(self, breaker):
        """Test consecutive failures open the circuit."""
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_success_resets_the_count(self, breaker):
        """Test only consecutive failures count."""
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_after_timeout(self, breaker, clock):
        """Test the circuit lets one trial through once the timeout passes."""
        breaker.record_failure()
        breaker.record_failure()

        clock.now += 29
        assert breaker.state == CircuitState.OPEN

        clock.now += 1
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()
        assert not breaker.allow_request()

    def test_trial_success_closes(self, breaker, clock):
        """Test a successful trial closes the circuit."""
        breaker.record_failure()
        breaker.record_failure()
        clock.now += 30
        assert breaker.allow_request()

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED
        assert breaker.allow_request()
        breaker.record_failure()
        assert breaker.state == CircuitState.CLOSED

    def test_trial_failure_reopens(self, breaker, clock):
        """Test a failed trial opens the circuit for another full timeout."""
        breaker.record_failure()
        breaker.record_failure()
        clock.now += 30
        assert breaker.allow_request()

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        clock.now += 29
        assert not breaker.allow_request()
        clock.now += 1
        assert breaker.state == CircuitState.HALF_OPEN


class Responder:
    """MockTransport handler answering Slack calls from a list of outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if outcome == "ok":
            return httpx.Response(200, json={"ok": True, "ts": "1700000000.000100"})
        if outcome == "down":
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"ok": False, "error": outcome})


def slack_client(responder, breaker) -> SlackClient:
    app_settings = Settings(slack_bot_token="xoxb-test", slack_api_url="https://slack.test/api")
    return SlackClient(
        app_settings,
        max_retries=1,
        circuit_breaker=breaker,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(responder)),
    )


class TestSlackClient:
    """Tests for SlackClient calls through the breaker."""

    @pytest.mark.asyncio
    async def test_post_message(self, breaker):
        """Test a posted message returns its ts and sends mentions and blocks."""
        responder = Responder("ok")
        client = slack_client(responder, breaker)

        ts = await client.post_message("#tickets", "New ticket", mentions=["U_SPOC"], ticket_id=7)

        assert ts == "1700000000.000100"
        request = responder.requests[0]
        assert request.url == "https://slack.test/api/chat.postMessage"
        assert request.headers["Authorization"] == "Bearer xoxb-test"
        body = json.loads(request.content)
        assert body["channel"] == "#tickets"
        assert body["text"].endswith("CC: <@U_SPOC>")
        assert body["blocks"]
        await client.close()

    @pytest.mark.asyncio
    async def test_outage_opens_then_recovers(self, breaker, clock):
        """Test an outage stops calls until a trial call succeeds."""
        responder = Responder("down", "down", "ok")
        client = slack_client(responder, breaker)

        assert await client.post_message("#tickets", "one") is None
        assert await client.post_message("#tickets", "two") is None
        assert client.circuit_state == CircuitState.OPEN

        assert await client.post_message("#tickets", "skipped") is None
        assert len(responder.requests) == 2

        clock.now += 30
        assert await client.post_message("#tickets", "three") == "1700000000.000100"
        assert client.circuit_state == CircuitState.CLOSED
        assert len(responder.requests) == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_permanent_error_keeps_circuit_closed(self, breaker):
        """Test an error Slack reports for the request itself is not an outage."""
        responder = Responder("channel_not_found")
        client = slack_client(responder, breaker)

        for _ in range(3):
            assert await client.post_message("#gone", "hello") is None

        assert client.circuit_state == CircuitState.CLOSED
        assert len(responder.requests) == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_unconfigured_client_skips(self, breaker):
        """Test no request is made without a bot token."""
        responder = Responder("ok")
        client = SlackClient(
            Settings(slack_bot_token=None),
            circuit_breaker=breaker,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(responder)),
        )

        assert await client.post_message("#tickets", "hello") is None
        assert responder.requests == []
        await client.close()
