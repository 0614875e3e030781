"""Database connection, session and transaction management.

Every multi-step business operation runs through ``run_in_transaction``:
one fresh session, one database transaction, commit on success and
rollback on any exception. Infrastructure faults are retried with
exponential backoff; business errors never are.
"""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, TypeVar

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from tourney.config import Settings, get_settings
from tourney.logging_config import get_logger
from tourney.utils.errors import TransientError

logger = get_logger(__name__)

T = TypeVar("T")

UnitOfWork = Callable[[AsyncSession], Awaitable[T]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy for infrastructure faults."""

    max_attempts: int = 3
    min_wait: float = 0.05
    max_wait: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.tx_max_attempts,
            min_wait=settings.tx_retry_min_wait,
            max_wait=settings.tx_retry_max_wait,
        )


def _enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """Make SQLite take the write lock at BEGIN.

    pysqlite defers BEGIN until the first write, so two transactions can
    both read a free slot before either writes. BEGIN IMMEDIATE serialises
    writers the way row locks do on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
) -> AsyncEngine:
    """Create an async engine for the given URL.

    SQLite URLs get a busy timeout and immediate transactions; other
    backends get a sized connection pool.
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": 30},
        )
        _enable_sqlite_immediate_transactions(engine)
        return engine

    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if pool_size is not None:
        kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        kwargs["max_overflow"] = max_overflow
    return create_async_engine(database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    """Application engine built from settings on first use."""
    settings = get_settings()
    return create_engine(
        settings.database_url,
        echo=settings.db_echo,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Application session factory."""
    return create_session_factory(get_engine())


@asynccontextmanager
async def get_db_session(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Context manager for a read-mostly session.

    Usage:
        async with get_db_session() as session:
            result = await session.execute(...)
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def is_transient(exc: BaseException) -> bool:
    """Whether an exception is an infrastructure fault worth retrying."""
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


async def run_in_transaction(
    work: UnitOfWork[T],
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    policy: RetryPolicy | None = None,
) -> T:
    """Run ``work`` inside one database transaction.

    Args:
        work: Async callable receiving the session; its reads and writes
            commit together or not at all
        session_factory: Session factory (defaults to the application one)
        policy: Retry policy for infrastructure faults

    Returns:
        Whatever ``work`` returns

    Raises:
        TourneyError: Business rule violations, propagated unchanged
        TransientError: The store kept failing after ``policy.max_attempts``
    """
    factory = session_factory or get_session_factory()
    policy = policy or RetryPolicy()

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(
                multiplier=policy.min_wait,
                min=policy.min_wait,
                max=policy.max_wait,
            ),
            retry=retry_if_exception(is_transient),
            before_sleep=before_sleep_log(logging.getLogger(__name__), logging.WARNING),
            reraise=True,
        ):
            with attempt:
                async with factory() as session:
                    async with session.begin():
                        result = await work(session)
    except (OperationalError, InterfaceError, DBAPIError) as exc:
        if not is_transient(exc):
            raise
        logger.error(
            "transaction_failed",
            attempts=policy.max_attempts,
            error=str(exc.orig) if exc.orig is not None else str(exc),
        )
        raise TransientError() from exc

    return result


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables."""
    from tourney.models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
