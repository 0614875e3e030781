"""Change feed: subscribe to document changes matching a predicate.

Services publish one ``ChangeEvent`` per written row after their
transaction commits, so subscribers never observe uncommitted state. A
subscriber may still receive a snapshot that is already stale by the time
it runs; handlers re-render from each event and assume nothing beyond
"this state existed".

When a Redis client is configured, events are also published on
``tourney:changes:<collection>`` so other instances can fan them out to
their own local subscribers.
"""

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

import redis.asyncio as redis
from sqlalchemy import inspect

from tourney.logging_config import get_logger
from tourney.utils.json_utils import json_dumps, json_loads

logger = get_logger(__name__)


class Collection(str, Enum):
    """Document collections that emit changes."""

    USERS = "users"
    TOURNAMENTS = "tournaments"
    PARTICIPANTS = "participants"
    TRANSACTIONS = "transactions"


class ChangeOperation(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass
class ChangeEvent:
    """One committed change to one document."""

    collection: Collection
    document_id: str
    operation: ChangeOperation
    data: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    origin: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "collection": self.collection.value,
            "document_id": self.document_id,
            "operation": self.operation.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "origin": self.origin,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ChangeEvent":
        return cls(
            event_id=payload["event_id"],
            collection=Collection(payload["collection"]),
            document_id=payload["document_id"],
            operation=ChangeOperation(payload["operation"]),
            data=payload.get("data") or {},
            timestamp=datetime.fromisoformat(payload["timestamp"]),
            origin=payload.get("origin"),
        )


def document_snapshot(obj: Any) -> dict[str, Any]:
    """Column values of a mapped object as a plain dict."""
    mapper = inspect(obj).mapper
    return {attr.key: getattr(obj, attr.key) for attr in mapper.column_attrs}


def change_of(
    obj: Any,
    collection: Collection,
    operation: ChangeOperation = ChangeOperation.UPDATED,
) -> ChangeEvent:
    """Build a change event from a mapped object."""
    return ChangeEvent(
        collection=collection,
        document_id=obj.id,
        operation=operation,
        data=document_snapshot(obj),
    )


ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
ChangePredicate = Callable[[dict[str, Any]], bool]


@dataclass
class Subscription:
    """Change subscription metadata."""

    subscription_id: str
    collection: Collection
    handler: ChangeHandler
    predicate: ChangePredicate | None = None
    is_active: bool = True

    def matches(self, event: ChangeEvent) -> bool:
        if not self.is_active or event.collection is not self.collection:
            return False
        return self.predicate is None or self.predicate(event.data)


@dataclass
class FeedMetrics:
    """Change feed counters."""

    events_published: int = 0
    events_delivered: int = 0
    handler_failures: int = 0
    predicate_failures: int = 0
    last_event_time: datetime | None = None


class ChangeFeed:
    """In-process change notification with optional Redis fan-out."""

    CHANNEL_PREFIX = "tourney:changes"

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        instance_id: str | None = None,
    ):
        self.redis = redis_client
        self.instance_id = instance_id or str(uuid4())[:8]

        self._subscriptions: dict[str, Subscription] = {}
        self._by_collection: dict[Collection, list[Subscription]] = defaultdict(list)
        self._listener_task: asyncio.Task | None = None
        self._metrics = FeedMetrics()

    @property
    def metrics(self) -> FeedMetrics:
        return self._metrics

    def channel_for(self, collection: Collection) -> str:
        return f"{self.CHANNEL_PREFIX}:{collection.value}"

    def subscribe(
        self,
        collection: Collection,
        handler: ChangeHandler,
        predicate: ChangePredicate | None = None,
    ) -> str:
        """Subscribe to changes in a collection.

        Args:
            collection: Collection to watch
            handler: Async function called with each matching event
            predicate: Filter over the document snapshot (None = every change)

        Returns:
            Subscription ID for unsubscribe
        """
        subscription = Subscription(
            subscription_id=str(uuid4()),
            collection=collection,
            handler=handler,
            predicate=predicate,
        )
        self._subscriptions[subscription.subscription_id] = subscription
        self._by_collection[collection].append(subscription)
        return subscription.subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove subscription."""
        subscription = self._subscriptions.pop(subscription_id, None)
        if not subscription:
            return False

        subscription.is_active = False
        self._by_collection[subscription.collection] = [
            s for s in self._by_collection[subscription.collection]
            if s.subscription_id != subscription_id
        ]
        return True

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver to local subscribers, then to Redis if configured."""
        if event.origin is None:
            event.origin = self.instance_id

        await self._dispatch_local(event)

        if self.redis is not None:
            try:
                await self.redis.publish(
                    self.channel_for(event.collection),
                    json_dumps(event.to_dict()),
                )
            except redis.RedisError as e:
                # Local delivery already happened; remote instances catch up on next change
                logger.warning(
                    "change_feed_publish_failed",
                    collection=event.collection.value,
                    document_id=event.document_id,
                    error=str(e),
                )

        self._metrics.events_published += 1
        self._metrics.last_event_time = datetime.now(timezone.utc)

    async def publish_batch(self, events: list[ChangeEvent]) -> None:
        for event in events:
            await self.publish(event)

    def _matching(self, event: ChangeEvent) -> list[Subscription]:
        matching = []
        for subscription in self._by_collection.get(event.collection, []):
            try:
                if subscription.matches(event):
                    matching.append(subscription)
            except Exception as e:
                self._metrics.predicate_failures += 1
                logger.error(
                    "change_predicate_failed",
                    subscription_id=subscription.subscription_id,
                    collection=event.collection.value,
                    document_id=event.document_id,
                    error=str(e),
                )
        return matching

    async def _dispatch_local(self, event: ChangeEvent) -> None:
        """Run matching handlers concurrently; one failure does not stop the rest."""
        matching = self._matching(event)
        if not matching:
            return

        results = await asyncio.gather(
            *(s.handler(event) for s in matching),
            return_exceptions=True,
        )
        for subscription, result in zip(matching, results):
            if isinstance(result, Exception):
                self._metrics.handler_failures += 1
                logger.error(
                    "change_handler_failed",
                    subscription_id=subscription.subscription_id,
                    collection=event.collection.value,
                    error=str(result),
                )
            else:
                self._metrics.events_delivered += 1

    async def start(self) -> None:
        """Start relaying remote events from Redis to local subscribers."""
        if self.redis is None or self._listener_task is not None:
            return
        self._listener_task = asyncio.create_task(self._listen())

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

    async def handle_remote_message(self, raw: bytes | str) -> None:
        """Dispatch one message received from another instance."""
        event = ChangeEvent.from_dict(json_loads(raw))
        if event.origin == self.instance_id:
            return
        await self._dispatch_local(event)

    async def _listen(self) -> None:
        pubsub = self.redis.pubsub()
        await pubsub.psubscribe(f"{self.CHANNEL_PREFIX}:*")
        try:
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message is None:
                    continue
                try:
                    await self.handle_remote_message(message["data"])
                except (KeyError, ValueError) as e:
                    logger.warning("change_feed_bad_message", error=str(e))
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
