"""Tests for prize settlement."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from tourney.models.participant import Participant, ParticipantStatus
from tourney.models.tournament import Tournament, TournamentStatus
from tourney.models.wallet import TransactionType, WalletTransaction
from tourney.services.settlement import compute_per_kill_payouts, validate_kills
from tourney.services.wallet import WalletService
from tourney.utils.errors import NotFoundError, TournamentClosedError, ValidationError


async def load_participants(session_factory, tournament_id) -> dict[str, Participant]:
    async with session_factory() as session:
        result = await session.execute(
            select(Participant).where(Participant.tournament_id == tournament_id)
        )
        return {p.user_id: p for p in result.scalars().all()}


async def load_status(session_factory, tournament_id) -> TournamentStatus:
    async with session_factory() as session:
        return (await session.get(Tournament, tournament_id)).status


async def credits_for(session_factory, tournament_id) -> list[WalletTransaction]:
    async with session_factory() as session:
        result = await session.execute(
            select(WalletTransaction)
            .where(WalletTransaction.tournament_id == tournament_id)
            .where(WalletTransaction.tx_type == TransactionType.CREDIT)
        )
        return list(result.scalars().all())


@pytest.fixture
def seeded(entries, make_user, make_tournament):
    """Tournament with three joined players."""

    async def _seed(**tournament_fields):
        tournament = await make_tournament(entry_fee=Decimal("0"), **tournament_fields)
        users = [await make_user(username=name) for name in ("ana", "bo", "cy")]
        participants = [
            await entries.join_tournament(u.id, tournament.id, display_name=u.username.upper())
            for u in users
        ]
        return tournament, users, participants

    return _seed


class TestSettleWinner:
    @pytest.mark.asyncio
    async def test_winner_takes_the_pool(self, settlement, accounts, seeded, session_factory):
        tournament, users, _ = await seeded(prize_pool=Decimal("1000"))
        winner = users[1]

        summary = await settlement.settle_winner(tournament.id, winner.id)

        assert summary.total_paid == Decimal("1000.00")
        assert [w.user_id for w in summary.winners] == [winner.id]
        assert await accounts.get_balance(winner.id) == Decimal("1000.00")

        credits = await credits_for(session_factory, tournament.id)
        assert len(credits) == 1
        assert credits[0].amount == Decimal("1000.00")
        assert credits[0].user_id == winner.id
        assert credits[0].description == "Prize money for Evening Clash"

        assert await load_status(session_factory, tournament.id) is TournamentStatus.COMPLETED
        statuses = {uid: p.status for uid, p in (await load_participants(session_factory, tournament.id)).items()}
        assert statuses[winner.id] is ParticipantStatus.WINNER
        assert statuses[users[0].id] is ParticipantStatus.COMPLETED
        assert statuses[users[2].id] is ParticipantStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_zero_pool_completes_without_credit(self, settlement, seeded, session_factory):
        tournament, users, _ = await seeded(prize_pool=Decimal("0"))

        summary = await settlement.settle_winner(tournament.id, users[0].id)

        assert summary.total_paid == Decimal("0")
        assert await credits_for(session_factory, tournament.id) == []
        assert await load_status(session_factory, tournament.id) is TournamentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_winner_must_be_a_participant(self, settlement, seeded, make_user, session_factory):
        tournament, _, _ = await seeded()
        outsider = await make_user()

        with pytest.raises(NotFoundError) as exc_info:
            await settlement.settle_winner(tournament.id, outsider.id)

        assert exc_info.value.code == "PARTICIPANT_NOT_FOUND"
        assert await load_status(session_factory, tournament.id) is TournamentStatus.UPCOMING

    @pytest.mark.asyncio
    async def test_per_kill_tournament_rejects_winner_settlement(self, settlement, seeded):
        tournament, users, _ = await seeded(per_kill_enabled=True, per_kill_prize=Decimal("50"))

        with pytest.raises(ValidationError, match="per-kill"):
            await settlement.settle_winner(tournament.id, users[0].id)

    @pytest.mark.asyncio
    async def test_settled_results_are_unseen(self, settlement, seeded, session_factory):
        tournament, users, _ = await seeded()

        await settlement.settle_winner(tournament.id, users[0].id)

        participants = await load_participants(session_factory, tournament.id)
        assert all(p.seen_by_user is False for p in participants.values())


class TestSettlePerKill:
    @pytest.mark.asyncio
    async def test_tie_at_top_makes_both_winners(self, settlement, accounts, seeded, session_factory):
        tournament, users, participants = await seeded(
            per_kill_enabled=True, per_kill_prize=Decimal("50")
        )
        kills = {participants[0].id: 3, participants[1].id: 5, participants[2].id: 5}

        summary = await settlement.settle_per_kill(tournament.id, kills)

        payouts = {line.user_id: line for line in summary.payouts}
        assert payouts[users[0].id].amount == Decimal("150.00")
        assert payouts[users[1].id].amount == Decimal("250.00")
        assert payouts[users[2].id].amount == Decimal("250.00")
        assert payouts[users[0].id].status is ParticipantStatus.COMPLETED
        assert payouts[users[1].id].status is ParticipantStatus.WINNER
        assert payouts[users[2].id].status is ParticipantStatus.WINNER

        assert await accounts.get_balance(users[0].id) == Decimal("150.00")
        assert await accounts.get_balance(users[2].id) == Decimal("250.00")

        stored = await load_participants(session_factory, tournament.id)
        assert stored[users[1].id].kills == 5
        assert stored[users[1].id].status is ParticipantStatus.WINNER
        assert await load_status(session_factory, tournament.id) is TournamentStatus.COMPLETED

        credits = await credits_for(session_factory, tournament.id)
        descriptions = sorted(c.description for c in credits)
        assert descriptions[0] == "Per-kill prize (3 kills) - ANA - Evening Clash"

    @pytest.mark.asyncio
    async def test_all_zero_kills(self, settlement, seeded, session_factory):
        tournament, _, participants = await seeded(per_kill_enabled=True, per_kill_prize=Decimal("50"))

        summary = await settlement.settle_per_kill(tournament.id, {p.id: 0 for p in participants})

        assert summary.winners == []
        assert all(line.status is ParticipantStatus.COMPLETED for line in summary.payouts)
        assert await credits_for(session_factory, tournament.id) == []
        assert await load_status(session_factory, tournament.id) is TournamentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_zero_kill_participant_gets_no_transaction(self, settlement, seeded, session_factory):
        tournament, users, participants = await seeded(per_kill_enabled=True, per_kill_prize=Decimal("10"))
        kills = {participants[0].id: 0, participants[1].id: 2, participants[2].id: 1}

        await settlement.settle_per_kill(tournament.id, kills)

        credited = {c.user_id for c in await credits_for(session_factory, tournament.id)}
        assert credited == {users[1].id, users[2].id}

    @pytest.mark.asyncio
    async def test_missing_kill_entry_changes_nothing(self, settlement, accounts, seeded, session_factory):
        tournament, users, participants = await seeded(per_kill_enabled=True, per_kill_prize=Decimal("50"))
        kills = {participants[0].id: 3, participants[1].id: 5}

        with pytest.raises(ValidationError) as exc_info:
            await settlement.settle_per_kill(tournament.id, kills)

        assert exc_info.value.details["missing"] == [participants[2].id]
        assert await load_status(session_factory, tournament.id) is TournamentStatus.UPCOMING
        assert await credits_for(session_factory, tournament.id) == []
        stored = await load_participants(session_factory, tournament.id)
        assert all(p.status is ParticipantStatus.JOINED and p.kills == 0 for p in stored.values())

    @pytest.mark.asyncio
    async def test_per_kill_disabled(self, settlement, seeded):
        tournament, _, participants = await seeded()

        with pytest.raises(ValidationError, match="not enabled"):
            await settlement.settle_per_kill(tournament.id, {p.id: 1 for p in participants})

    @pytest.mark.asyncio
    async def test_preview_writes_nothing(self, settlement, seeded, session_factory):
        tournament, _, participants = await seeded(per_kill_enabled=True, per_kill_prize=Decimal("20"))

        lines = await settlement.preview_per_kill(tournament.id, {p.id: 2 for p in participants})

        assert [line.amount for line in lines] == [Decimal("40.00")] * 3
        assert all(line.status is ParticipantStatus.WINNER for line in lines)
        assert await load_status(session_factory, tournament.id) is TournamentStatus.UPCOMING

    @pytest.mark.asyncio
    async def test_users_locked_in_id_order(self, settlement, accounts, seeded, monkeypatch):
        tournament, users, participants = await seeded(per_kill_enabled=True, per_kill_prize=Decimal("10"))
        locked = []
        original = WalletService.lock_user

        async def recording_lock(self, user_id):
            locked.append(user_id)
            return await original(self, user_id)

        monkeypatch.setattr(WalletService, "lock_user", recording_lock)
        kills = {participants[0].id: 1, participants[1].id: 0, participants[2].id: 3}

        await settlement.settle_per_kill(tournament.id, kills)

        assert locked == sorted([users[0].id, users[2].id])
        assert await accounts.get_balance(users[0].id) == Decimal("10.00")
        assert await accounts.get_balance(users[2].id) == Decimal("30.00")


class TestSettleCompleted:
    @pytest.mark.asyncio
    async def test_second_settlement_fails_and_changes_nothing(
        self, settlement, accounts, seeded, session_factory
    ):
        tournament, users, _ = await seeded(prize_pool=Decimal("300"))
        await settlement.settle_winner(tournament.id, users[0].id)

        with pytest.raises(TournamentClosedError):
            await settlement.settle_winner(tournament.id, users[1].id)

        assert await accounts.get_balance(users[0].id) == Decimal("300.00")
        assert await accounts.get_balance(users[1].id) == Decimal("0.00")
        assert len(await credits_for(session_factory, tournament.id)) == 1

    @pytest.mark.asyncio
    async def test_settle_unknown_tournament(self, settlement):
        with pytest.raises(NotFoundError):
            await settlement.settle_per_kill("missing", {})


class TestPayoutCalculation:
    """Pure payout arithmetic."""

    @staticmethod
    def participant(pid):
        return SimpleNamespace(id=pid, user_id=f"user-{pid}", ingame_name=pid.upper())

    def test_tie_payouts(self):
        people = [self.participant(p) for p in ("a", "b", "c")]

        lines = compute_per_kill_payouts(people, {"a": 3, "b": 5, "c": 5}, Decimal("50"))

        assert [line.amount for line in lines] == [Decimal("150.00"), Decimal("250.00"), Decimal("250.00")]
        assert [line.status for line in lines] == [
            ParticipantStatus.COMPLETED,
            ParticipantStatus.WINNER,
            ParticipantStatus.WINNER,
        ]

    def test_no_participants(self):
        assert compute_per_kill_payouts([], {}, Decimal("50")) == []

    @pytest.mark.parametrize(
        "kills,message",
        [
            ({"a": 1}, "required for every participant"),
            ({"a": 1, "b": 1, "x": 1}, "unknown participants"),
            ({"a": -1, "b": 0}, "non-negative integer"),
            ({"a": True, "b": 0}, "non-negative integer"),
            ({"a": 1.5, "b": 0}, "non-negative integer"),
            ({"a": "3", "b": 0}, "non-negative integer"),
        ],
    )
    def test_validate_kills_rejects(self, kills, message):
        with pytest.raises(ValidationError, match=message):
            validate_kills(["a", "b"], kills)
