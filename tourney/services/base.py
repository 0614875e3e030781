"""Shared plumbing for services that own their transactions."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourney.events import ChangeEvent, ChangeFeed
from tourney.utils.db import RetryPolicy, get_db_session, run_in_transaction

T = TypeVar("T")

EventfulWork = Callable[[AsyncSession, list[ChangeEvent]], Awaitable[T]]


class TransactionalService:
    """Base for services whose operations are one transaction each.

    Work functions receive the session and a list to append change events
    to; the events are published only after the transaction commits.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        change_feed: ChangeFeed | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.session_factory = session_factory
        self.change_feed = change_feed
        self.retry_policy = retry_policy

    async def _transact(self, work: EventfulWork[T]) -> T:
        events: list[ChangeEvent] = []

        async def unit(session: AsyncSession) -> T:
            # A retried attempt starts from a clean slate
            events.clear()
            return await work(session, events)

        result = await run_in_transaction(
            unit,
            session_factory=self.session_factory,
            policy=self.retry_policy,
        )

        if self.change_feed is not None and events:
            await self.change_feed.publish_batch(events)
        return result

    @asynccontextmanager
    async def _read(self) -> AsyncGenerator[AsyncSession, None]:
        async with get_db_session(self.session_factory) as session:
            yield session
