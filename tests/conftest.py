"""Shared fixtures: a throwaway SQLite database and the services bound to it."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tourney.events import ChangeFeed
from tourney.services.entry import EntryLedger
from tourney.services.settlement import PrizeSettlement
from tourney.services.tournament import TournamentService
from tourney.services.user import AccountService
from tourney.utils.db import RetryPolicy, create_engine, create_session_factory, init_db

FAST_RETRY = RetryPolicy(max_attempts=3, min_wait=0.01, max_wait=0.02)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent transactions use separate connections."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'tourney.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def change_feed() -> ChangeFeed:
    return ChangeFeed(instance_id="test")


@pytest.fixture
def accounts(session_factory, change_feed) -> AccountService:
    return AccountService(session_factory, change_feed=change_feed, retry_policy=FAST_RETRY)


@pytest.fixture
def tournaments(session_factory, change_feed) -> TournamentService:
    return TournamentService(session_factory, change_feed=change_feed, retry_policy=FAST_RETRY)


@pytest.fixture
def entries(session_factory, change_feed) -> EntryLedger:
    return EntryLedger(session_factory, change_feed=change_feed, retry_policy=FAST_RETRY)


@pytest.fixture
def settlement(session_factory, change_feed) -> PrizeSettlement:
    return PrizeSettlement(session_factory, change_feed=change_feed, retry_policy=FAST_RETRY)


@pytest.fixture
def make_user(accounts):
    """Create a user whose opening balance is booked on the ledger."""

    async def _make(balance="0", username=None, is_admin=False):
        name = username or f"player_{uuid4().hex[:8]}"
        return await accounts.create_user(
            name,
            f"{name}_{uuid4().hex[:6]}@example.com",
            is_admin=is_admin,
            opening_balance=Decimal(str(balance)),
        )

    return _make


@pytest.fixture
def make_tournament(tournaments):
    """Create an Upcoming tournament; keyword arguments override the defaults."""

    async def _make(**overrides):
        fields = dict(
            title="Evening Clash",
            game_name="Free Fire",
            match_time=datetime.now(timezone.utc) + timedelta(hours=2),
            entry_fee=Decimal("50"),
            prize_pool=Decimal("1000"),
            mode="solo",
            max_participants=10,
        )
        fields.update(overrides)
        return await tournaments.create_tournament(**fields)

    return _make
