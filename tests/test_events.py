"""Tests for the change feed."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from tourney.events import ChangeEvent, ChangeFeed, ChangeOperation, Collection
from tourney.services.entry import EntryLedger
from tourney.utils.errors import InsufficientBalanceError
from tourney.utils.json_utils import json_dumps, json_loads


def event(collection=Collection.TOURNAMENTS, document_id="t-1", **data) -> ChangeEvent:
    return ChangeEvent(
        collection=collection,
        document_id=document_id,
        operation=ChangeOperation.UPDATED,
        data=data,
    )


class TestLocalDelivery:
    @pytest.mark.asyncio
    async def test_predicate_filters_events(self):
        feed = ChangeFeed(instance_id="a")
        seen = []

        async def handler(e):
            seen.append(e.document_id)

        feed.subscribe(Collection.TOURNAMENTS, handler, predicate=lambda d: d.get("status") == "Live")

        await feed.publish(event(document_id="t-1", status="Upcoming"))
        await feed.publish(event(document_id="t-2", status="Live"))
        await feed.publish(event(Collection.USERS, document_id="u-1", status="Live"))

        assert seen == ["t-2"]
        assert feed.metrics.events_published == 3
        assert feed.metrics.events_delivered == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        feed = ChangeFeed(instance_id="a")
        handler = AsyncMock()
        subscription_id = feed.subscribe(Collection.USERS, handler)

        assert feed.unsubscribe(subscription_id) is True
        assert feed.unsubscribe(subscription_id) is False

        await feed.publish(event(Collection.USERS))
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        feed = ChangeFeed(instance_id="a")
        broken = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = AsyncMock()
        feed.subscribe(Collection.PARTICIPANTS, broken)
        feed.subscribe(Collection.PARTICIPANTS, healthy)

        await feed.publish(event(Collection.PARTICIPANTS))

        healthy.assert_awaited_once()
        assert feed.metrics.handler_failures == 1

    @pytest.mark.asyncio
    async def test_failing_predicate_does_not_block_others(self):
        feed = ChangeFeed(instance_id="a")
        picky = AsyncMock()
        healthy = AsyncMock()
        feed.subscribe(Collection.PARTICIPANTS, picky, predicate=lambda d: d["missing_key"])
        feed.subscribe(Collection.PARTICIPANTS, healthy)

        await feed.publish(event(Collection.PARTICIPANTS))

        picky.assert_not_called()
        healthy.assert_awaited_once()
        assert feed.metrics.predicate_failures == 1
        assert feed.metrics.events_published == 1

    @pytest.mark.asyncio
    async def test_origin_stamped_with_instance(self):
        feed = ChangeFeed(instance_id="node-1")
        e = event()

        await feed.publish(e)

        assert e.origin == "node-1"


class TestRedisFanOut:
    @pytest.mark.asyncio
    async def test_publishes_serialised_event(self):
        client = MagicMock()
        client.publish = AsyncMock()
        feed = ChangeFeed(redis_client=client, instance_id="a")

        await feed.publish(event(prize_pool=Decimal("10.00")))

        channel, payload = client.publish.call_args.args
        assert channel == "tourney:changes:tournaments"
        decoded = json_loads(payload)
        assert decoded["document_id"] == "t-1"
        assert decoded["data"]["prize_pool"] == "10.00"

    @pytest.mark.asyncio
    async def test_redis_failure_keeps_local_delivery(self):
        client = MagicMock()
        client.publish = AsyncMock(side_effect=redis.ConnectionError("down"))
        feed = ChangeFeed(redis_client=client, instance_id="a")
        handler = AsyncMock()
        feed.subscribe(Collection.TOURNAMENTS, handler)

        await feed.publish(event())

        handler.assert_awaited_once()
        assert feed.metrics.events_published == 1

    @pytest.mark.asyncio
    async def test_remote_message_dispatched_unless_own(self):
        feed = ChangeFeed(instance_id="a")
        handler = AsyncMock()
        feed.subscribe(Collection.TOURNAMENTS, handler)

        remote = event(document_id="t-9")
        remote.origin = "b"
        own = event(document_id="t-8")
        own.origin = "a"

        await feed.handle_remote_message(json_dumps(remote.to_dict()))
        await feed.handle_remote_message(json_dumps(own.to_dict()))

        handler.assert_awaited_once()
        assert handler.call_args.args[0].document_id == "t-9"


class TestPublishAfterCommit:
    @pytest.mark.asyncio
    async def test_join_publishes_committed_changes(
        self, session_factory, change_feed, make_user, make_tournament
    ):
        ledger = EntryLedger(session_factory, change_feed=change_feed)
        user = await make_user(balance="60")
        tournament = await make_tournament(entry_fee=Decimal("50"))
        tournament_changes = []
        participant_changes = []

        async def on_tournament(e):
            tournament_changes.append(e.data)

        async def on_participant(e):
            participant_changes.append(e.data)

        change_feed.subscribe(Collection.TOURNAMENTS, on_tournament)
        change_feed.subscribe(
            Collection.PARTICIPANTS, on_participant, predicate=lambda d: d["user_id"] == user.id
        )

        await ledger.join_tournament(user.id, tournament.id, display_name="Watcher")

        assert len(participant_changes) == 1
        assert participant_changes[0]["slot_index"] == 1
        assert tournament_changes[-1]["current_participants"] == 1

    @pytest.mark.asyncio
    async def test_rejected_join_publishes_nothing(
        self, session_factory, change_feed, make_user, make_tournament
    ):
        ledger = EntryLedger(session_factory, change_feed=change_feed)
        user = await make_user(balance="10")
        tournament = await make_tournament(entry_fee=Decimal("50"))
        handler = AsyncMock()
        for collection in Collection:
            change_feed.subscribe(collection, handler)

        with pytest.raises(InsufficientBalanceError):
            await ledger.join_tournament(user.id, tournament.id, display_name="Broke")

        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_join_succeeds_when_subscriber_predicate_raises(
        self, entries, tournaments, change_feed, make_user, make_tournament
    ):
        user = await make_user(balance="60")
        tournament = await make_tournament(entry_fee=Decimal("50"))
        handler = AsyncMock()
        change_feed.subscribe(Collection.PARTICIPANTS, handler, predicate=lambda d: d["missing_key"])

        participant = await entries.join_tournament(user.id, tournament.id, display_name="Ace")

        stored = await tournaments.list_participants(tournament.id)
        assert [p.id for p in stored] == [participant.id]
        handler.assert_not_called()
        assert change_feed.metrics.predicate_failures == 1
