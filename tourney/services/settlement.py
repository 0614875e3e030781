"""
Prize Settlement Service.

Closes a tournament and pays its winners in one transaction.

Features:
- Winner-take-all: the whole prize pool to one participant
- Per-kill: kills x per-kill prize to every participant, top scorers marked Winner
- Validation before any write
- Change events published after commit

Usage:
    settlement = PrizeSettlement(session_factory)
    summary = await settlement.settle_per_kill(tournament_id, {participant_id: kills})
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourney.events import ChangeEvent, ChangeOperation, Collection, change_of
from tourney.logging_config import get_logger, tournament_context
from tourney.models.base import ZERO, utcnow
from tourney.models.participant import Participant, ParticipantStatus
from tourney.models.tournament import Tournament, TournamentStatus
from tourney.services.base import TransactionalService
from tourney.services.wallet import WalletService
from tourney.utils.errors import (
    NotFoundError,
    TournamentClosedError,
    TourneyError,
    ValidationError,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class PayoutLine:
    """Outcome for one participant."""

    participant_id: str
    user_id: str
    ingame_name: str
    kills: int
    amount: Decimal
    status: ParticipantStatus
    transaction_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "participant_id": self.participant_id,
            "user_id": self.user_id,
            "ingame_name": self.ingame_name,
            "kills": self.kills,
            "amount": str(self.amount),
            "status": self.status.value,
            "transaction_id": self.transaction_id,
        }


@dataclass(frozen=True)
class SettlementSummary:
    """Settlement result for a whole tournament."""

    tournament_id: str
    tournament_title: str
    mode: str
    payouts: tuple[PayoutLine, ...] = ()
    settled_at: datetime = field(default_factory=utcnow)

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payouts), ZERO)

    @property
    def winners(self) -> list[PayoutLine]:
        return [p for p in self.payouts if p.status is ParticipantStatus.WINNER]

    def to_dict(self) -> dict:
        return {
            "tournament_id": self.tournament_id,
            "tournament_title": self.tournament_title,
            "mode": self.mode,
            "total_paid": str(self.total_paid),
            "winners": [p.participant_id for p in self.winners],
            "payouts": [p.to_dict() for p in self.payouts],
            "settled_at": self.settled_at.isoformat(),
        }


def validate_kills(participant_ids: Iterable[str], kills: Mapping[str, object]) -> dict[str, int]:
    """Check a kill sheet covers exactly the given participants.

    Returns:
        The kill counts as plain ints

    Raises:
        ValidationError: Missing or unknown participant, or a count that is
            not a non-negative integer
    """
    expected = set(participant_ids)
    provided = set(kills)

    missing = sorted(expected - provided)
    if missing:
        raise ValidationError(
            "Kill count required for every participant",
            details={"missing": missing},
        )
    unknown = sorted(provided - expected)
    if unknown:
        raise ValidationError(
            "Kill counts given for unknown participants",
            details={"unknown": unknown},
        )

    clean: dict[str, int] = {}
    for participant_id, value in kills.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                "Kill count must be a non-negative integer",
                details={"participantId": participant_id, "kills": repr(value)},
            )
        clean[participant_id] = value
    return clean


def compute_per_kill_payouts(
    participants: Iterable[Participant],
    kills: Mapping[str, int],
    per_kill_prize: Decimal,
) -> list[PayoutLine]:
    """Per-kill payouts without touching the store.

    Every participant earns ``kills * per_kill_prize``. Participants tied at
    the highest non-zero kill count are Winner; everyone else is Completed.
    """
    participants = list(participants)
    clean = validate_kills([p.id for p in participants], kills)
    max_kills = max(clean.values(), default=0)

    lines = []
    for p in participants:
        count = clean[p.id]
        is_top = max_kills > 0 and count == max_kills
        lines.append(
            PayoutLine(
                participant_id=p.id,
                user_id=p.user_id,
                ingame_name=p.ingame_name,
                kills=count,
                amount=(per_kill_prize * count).quantize(Decimal("0.01")),
                status=ParticipantStatus.WINNER if is_top else ParticipantStatus.COMPLETED,
            )
        )
    return lines


class PrizeSettlement(TransactionalService):
    """Settles finished tournaments."""

    async def settle_winner(self, tournament_id: str, winner_user_id: str) -> SettlementSummary:
        """Pay the whole prize pool to one winner.

        Raises:
            NotFoundError: Unknown tournament, or winner not a participant
            TournamentClosedError: Already Completed
            ValidationError: Tournament uses per-kill prizes
        """

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> SettlementSummary:
            tournament = await self._lock_open_tournament(session, tournament_id)
            if tournament.per_kill_enabled:
                raise ValidationError(
                    "Tournament uses per-kill prizes; submit kill counts instead",
                    details={"tournamentId": tournament.id},
                )

            participants = await self._participants(session, tournament.id)
            winner = next((p for p in participants if p.user_id == winner_user_id), None)
            if winner is None:
                raise NotFoundError("participant", winner_user_id)

            wallet = WalletService(session)
            transaction_id = None
            if tournament.prize_pool > 0:
                user = await wallet.lock_user(winner.user_id)
                tx = await wallet.credit(
                    winner.user_id,
                    tournament.prize_pool,
                    description=f"Prize money for {tournament.title}",
                    tournament_id=tournament.id,
                    user=user,
                )
                transaction_id = tx.id
                events.append(change_of(tx, Collection.TRANSACTIONS, ChangeOperation.CREATED))
                events.append(change_of(user, Collection.USERS))

            lines = []
            for p in participants:
                is_winner = p.id == winner.id
                p.status = ParticipantStatus.WINNER if is_winner else ParticipantStatus.COMPLETED
                p.seen_by_user = False
                lines.append(
                    PayoutLine(
                        participant_id=p.id,
                        user_id=p.user_id,
                        ingame_name=p.ingame_name,
                        kills=p.kills,
                        amount=tournament.prize_pool if is_winner else ZERO,
                        status=p.status,
                        transaction_id=transaction_id if is_winner else None,
                    )
                )

            return await self._complete(session, events, tournament, participants, lines, "winner")

        return await self._run(work, tournament_id, "winner")

    async def settle_per_kill(
        self,
        tournament_id: str,
        kills_by_participant: Mapping[str, int],
    ) -> SettlementSummary:
        """Pay every participant for their kills.

        Args:
            tournament_id: Tournament to settle
            kills_by_participant: Kill count per participant id, covering
                every participant

        Raises:
            NotFoundError: Unknown tournament
            TournamentClosedError: Already Completed
            ValidationError: Per-kill disabled, or an incomplete or invalid kill sheet
        """

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> SettlementSummary:
            tournament = await self._lock_open_tournament(session, tournament_id)
            if not tournament.per_kill_enabled:
                raise ValidationError(
                    "Per-kill prizes are not enabled for this tournament",
                    details={"tournamentId": tournament.id},
                )

            participants = await self._participants(session, tournament.id)
            planned = compute_per_kill_payouts(
                participants, kills_by_participant, tournament.per_kill_prize
            )

            wallet = WalletService(session)
            # Row locks are always taken in user id order
            users = {}
            for user_id in sorted({line.user_id for line in planned if line.amount > 0}):
                users[user_id] = await wallet.lock_user(user_id)
            by_id = {p.id: p for p in participants}
            lines = []
            for line in planned:
                p = by_id[line.participant_id]
                p.kills = line.kills
                p.status = line.status
                p.seen_by_user = False

                transaction_id = None
                if line.amount > 0:
                    user = users[p.user_id]
                    tx = await wallet.credit(
                        p.user_id,
                        line.amount,
                        description=(
                            f"Per-kill prize ({line.kills} kills) - "
                            f"{p.ingame_name} - {tournament.title}"
                        ),
                        tournament_id=tournament.id,
                        user=user,
                    )
                    transaction_id = tx.id
                    events.append(change_of(tx, Collection.TRANSACTIONS, ChangeOperation.CREATED))
                    events.append(change_of(user, Collection.USERS))

                lines.append(
                    PayoutLine(
                        participant_id=line.participant_id,
                        user_id=line.user_id,
                        ingame_name=line.ingame_name,
                        kills=line.kills,
                        amount=line.amount,
                        status=line.status,
                        transaction_id=transaction_id,
                    )
                )

            return await self._complete(session, events, tournament, participants, lines, "per_kill")

        return await self._run(work, tournament_id, "per_kill")

    async def preview_per_kill(
        self,
        tournament_id: str,
        kills_by_participant: Mapping[str, int],
    ) -> list[PayoutLine]:
        """Payouts a per-kill settlement would make, without writing anything."""
        async with self._read() as session:
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise NotFoundError("tournament", tournament_id)
            participants = await self._participants(session, tournament.id)
            return compute_per_kill_payouts(
                participants, kills_by_participant, tournament.per_kill_prize
            )

    async def _run(self, work, tournament_id: str, mode: str) -> SettlementSummary:
        with tournament_context(tournament_id, settlement_mode=mode):
            try:
                summary = await self._transact(work)
            except TourneyError as e:
                logger.warning("settlement_rejected", code=e.code, error=e.message)
                raise

            logger.info(
                "tournament_settled",
                total_paid=str(summary.total_paid),
                winners=len(summary.winners),
                participants=len(summary.payouts),
            )
        return summary

    @staticmethod
    async def _lock_open_tournament(session: AsyncSession, tournament_id: str) -> Tournament:
        tournament = await session.scalar(
            select(Tournament).where(Tournament.id == tournament_id).with_for_update()
        )
        if tournament is None:
            raise NotFoundError("tournament", tournament_id)
        if tournament.is_completed:
            raise TournamentClosedError(tournament.id, tournament.status.value)
        return tournament

    @staticmethod
    async def _participants(session: AsyncSession, tournament_id: str) -> list[Participant]:
        result = await session.execute(
            select(Participant)
            .where(Participant.tournament_id == tournament_id)
            .order_by(Participant.slot_index)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _complete(
        session: AsyncSession,
        events: list[ChangeEvent],
        tournament: Tournament,
        participants: list[Participant],
        lines: list[PayoutLine],
        mode: str,
    ) -> SettlementSummary:
        tournament.status = TournamentStatus.COMPLETED
        await session.flush()

        events.extend(change_of(p, Collection.PARTICIPANTS) for p in participants)
        events.append(change_of(tournament, Collection.TOURNAMENTS))

        return SettlementSummary(
            tournament_id=tournament.id,
            tournament_title=tournament.title,
            mode=mode,
            payouts=tuple(lines),
        )
