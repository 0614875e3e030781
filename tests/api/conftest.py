"""Test fixtures for API tests."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tourney.api.deps import Services
from tourney.config import Settings
from tourney.main import create_app


def get_test_settings(tmp_path) -> Settings:
    """Get test-specific settings."""
    return Settings(
        _env_file=None,
        app_env="test",
        app_debug=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tourney.db'}",
        tx_retry_min_wait=0.01,
        tx_retry_max_wait=0.02,
    )


@pytest.fixture
def services(tmp_path, session_factory, change_feed) -> Services:
    return Services.build(get_test_settings(tmp_path), session_factory, change_feed)


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app sharing the test database."""
    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def admin(make_user):
    return await make_user(username="admin", is_admin=True)


@pytest.fixture
def tournament_payload():
    def _payload(**overrides):
        payload = {
            "title": "Night Royale",
            "gameName": "Free Fire",
            "matchTime": (datetime.now(timezone.utc) + timedelta(hours=3)).isoformat(),
            "entryFee": "20",
            "prizePool": "500",
            "mode": "duo",
            "maxParticipants": 4,
        }
        payload.update(overrides)
        return payload

    return _payload
