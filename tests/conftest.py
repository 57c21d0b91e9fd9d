import pytest
import pytest_asyncio
import yaml
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from campus_resolve.config import Settings
from campus_resolve.container import build_container
from campus_resolve.infrastructure.database import (
    close_database, create_tables, get_engine, get_session_context, init_database
)
from campus_resolve.main import app
from campus_resolve.notifications.application.services import NotificationDispatcher

from factories import FakeEmailClient, FakeSlackClient, raise_ticket, seed_campus

TEST_DEFAULTS = {
    "enable_slack": True,
    "enable_email": True,
    "slack_channel": "#tickets",
    "legacy_slack_categories": ["Hostel", "College", "Committee"],
    "domain_channels": {"Hostel": "#hostel-tickets"},
    "scope_channels": {"North Tower": "#north-tower"},
}


@pytest.fixture
def defaults_file(tmp_path):
    """Notification defaults YAML in a temporary directory."""
    path = tmp_path / "notification_defaults.yaml"
    path.write_text(yaml.safe_dump(TEST_DEFAULTS))
    return path


@pytest.fixture
def test_settings(tmp_path, defaults_file) -> Settings:
    """Settings for a throwaway SQLite database with no outbound integrations."""
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        notification_defaults_path=defaults_file,
        identity_provider_userinfo_url=None,
        slack_bot_token=None,
        slack_signing_secret=None,
        email_api_key=None,
        cron_secret=None,
        escalation_sweep_interval=0,
    )


@pytest_asyncio.fixture
async def engine(test_settings):
    """Create the test database and tables."""
    engine = create_async_engine(test_settings.database_url, poolclass=NullPool)
    init_database(test_settings, engine=engine)
    await create_tables()

    yield engine

    await close_database()


@pytest_asyncio.fixture
async def seed(engine):
    """Seed the campus fixture data (see factories.seed_campus)."""
    async with get_session_context() as session:
        return await seed_campus(session)


@pytest.fixture
def slack():
    return FakeSlackClient()


@pytest.fixture
def email():
    return FakeEmailClient()


@pytest_asyncio.fixture
async def container(test_settings, engine, slack, email):
    """Service container with Slack and email replaced by recording fakes."""
    container = build_container(test_settings, get_engine)
    container.slack_client = slack
    container.email_client = email
    container.dispatcher = NotificationDispatcher(slack, email)

    yield container

    await container.outbox.stop()


@pytest_asyncio.fixture
async def client(container):
    """Test client bound to the test container."""
    app.state.container = container

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    del app.state.container



@pytest_asyncio.fixture
async def ticket_factory(client, seed, container):
    """Raise a ticket through the API and wait for its creation notification."""

    async def factory(**overrides):
        ticket = await raise_ticket(client, seed, **overrides)
        assert await container.outbox.drain(timeout=5)
        return ticket

    return factory
