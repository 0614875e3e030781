"""Tournament lifecycle and read models.

Creation (with its slot table), room release, the player lobby, a
player's own registrations with their notification level, and the admin
dashboard figures.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourney.events import ChangeEvent, ChangeFeed, ChangeOperation, Collection, change_of
from tourney.logging_config import get_logger
from tourney.models.base import ZERO, new_id
from tourney.models.participant import Participant
from tourney.models.tournament import GameMode, Tournament, TournamentSlot, TournamentStatus
from tourney.models.user import User
from tourney.services.base import TransactionalService
from tourney.services.slots import SlotAllocator, build_slot_layout, group_by_team, list_free_slots
from tourney.services.wallet import to_money
from tourney.utils.db import RetryPolicy
from tourney.utils.errors import (
    InvalidStatusTransitionError,
    NotFoundError,
    TournamentClosedError,
    ValidationError,
)

logger = get_logger(__name__)

DEFAULT_COMMISSION_RATE = Decimal("20")
DEFAULT_MAX_PARTICIPANTS = 100


class AttentionLevel(str, Enum):
    """What a player's "my tournaments" indicator should show.

    Priority: live > pending > result > none.
    """

    LIVE = "live"
    PENDING = "pending"
    RESULT = "result"
    NONE = "none"


@dataclass(frozen=True)
class TournamentView:
    """A tournament with its derived occupancy."""

    tournament: Tournament
    current_participants: int
    joined: bool = False

    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.tournament.max_participants


@dataclass(frozen=True)
class UserEntry:
    """One of a player's registrations together with its tournament."""

    participant: Participant
    tournament: Tournament

    @property
    def room_released(self) -> bool:
        t = self.tournament
        return t.status is TournamentStatus.LIVE and bool(t.room_id) and bool(t.room_password)

    @property
    def unseen_result(self) -> bool:
        settled = self.tournament.is_completed or self.participant.is_settled
        return settled and not self.participant.seen_by_user


@dataclass(frozen=True)
class SlotBoard:
    """Slot rows grouped by team, with the free slot indices."""

    tournament_id: str
    teams: dict[int, list[TournamentSlot]]
    free_slots: set[int]


@dataclass(frozen=True)
class DashboardStats:
    total_users: int
    total_tournaments: int
    prize_distributed: Decimal
    estimated_revenue: Decimal

    def to_dict(self) -> dict:
        return {
            "total_users": self.total_users,
            "total_tournaments": self.total_tournaments,
            "prize_distributed": str(self.prize_distributed),
            "estimated_revenue": str(self.estimated_revenue),
        }


def attention_level(entries: list[UserEntry]) -> AttentionLevel:
    """Highest-priority notification across a player's registrations."""
    pending = result = False
    for entry in entries:
        if entry.room_released:
            return AttentionLevel.LIVE
        if entry.tournament.status in (TournamentStatus.UPCOMING, TournamentStatus.LIVE):
            pending = True
        if entry.unseen_result:
            result = True
    if pending:
        return AttentionLevel.PENDING
    if result:
        return AttentionLevel.RESULT
    return AttentionLevel.NONE


def estimate_revenue(tournaments: list[Tournament], default_rate: Decimal) -> Decimal:
    """Commission earned, back-calculated from each prize pool.

    ``pool / (1 - rate) * rate``; a tournament without a rate uses
    ``default_rate``. A 100% rate leaves no pool to back-calculate from.
    """
    revenue = ZERO
    for t in tournaments:
        rate = (t.commission_rate or default_rate) / 100
        if rate >= 1:
            continue
        revenue += t.prize_pool / (1 - rate) * rate
    return revenue.quantize(Decimal("0.01"))


def _require_text(value: str | None, field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required", details={"field": field_name})
    return text


class TournamentService(TransactionalService):
    """Tournament administration and player-facing reads."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        change_feed: ChangeFeed | None = None,
        retry_policy: RetryPolicy | None = None,
        default_commission_rate: Decimal = DEFAULT_COMMISSION_RATE,
        default_max_participants: int = DEFAULT_MAX_PARTICIPANTS,
    ):
        super().__init__(session_factory, change_feed=change_feed, retry_policy=retry_policy)
        self.default_commission_rate = default_commission_rate
        self.default_max_participants = default_max_participants

    async def create_tournament(
        self,
        *,
        title: str,
        game_name: str,
        match_time: datetime,
        entry_fee: Decimal | int | str = 0,
        prize_pool: Decimal | int | str = 0,
        description: str = "",
        map_name: str = "",
        mode: GameMode | str = GameMode.SOLO,
        max_participants: int | None = None,
        commission_rate: Decimal | int | str | None = None,
        per_kill_enabled: bool = False,
        per_kill_prize: Decimal | int | str = 0,
    ) -> Tournament:
        """Create an Upcoming tournament and its empty slot table.

        Raises:
            ConfigurationError: Unknown mode, or capacity that does not fit the mode
            ValidationError: Missing title or game, bad money values
        """
        title = _require_text(title, "title")
        game_name = _require_text(game_name, "game_name")
        if match_time is None:
            raise ValidationError("match_time is required", details={"field": "match_time"})

        capacity = self.default_max_participants if max_participants is None else max_participants
        build_slot_layout(mode, capacity)
        game_mode = GameMode(mode)
        rate = to_money(
            self.default_commission_rate if commission_rate is None else commission_rate,
            field_name="commission_rate",
        )
        if rate > 100:
            raise ValidationError(
                "commission_rate must be between 0 and 100",
                details={"commission_rate": str(rate)},
            )
        kill_prize = to_money(per_kill_prize, field_name="per_kill_prize") if per_kill_enabled else ZERO

        fields = dict(
            title=title,
            game_name=game_name,
            match_time=match_time,
            description=(description or "").strip(),
            map_name=(map_name or "").strip(),
            entry_fee=to_money(entry_fee, field_name="entry_fee"),
            prize_pool=to_money(prize_pool, field_name="prize_pool"),
            commission_rate=rate,
            status=TournamentStatus.UPCOMING,
            room_id="",
            room_password="",
            mode=game_mode,
            max_participants=capacity,
            per_kill_enabled=per_kill_enabled,
            per_kill_prize=kill_prize,
        )

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> Tournament:
            tournament = Tournament(id=new_id(), **fields)
            session.add(tournament)
            SlotAllocator(session).materialize(tournament)
            await session.flush()
            events.append(change_of(tournament, Collection.TOURNAMENTS, ChangeOperation.CREATED))
            return tournament

        created = await self._transact(work)
        logger.info(
            "tournament_created",
            tournament_id=created.id,
            mode=created.mode.value,
            max_participants=created.max_participants,
            per_kill_enabled=created.per_kill_enabled,
        )
        return created

    async def update_room_details(
        self,
        tournament_id: str,
        room_id: str,
        room_password: str,
    ) -> Tournament:
        """Release room credentials; an Upcoming tournament becomes Live.

        Raises:
            NotFoundError: Unknown tournament
            TournamentClosedError: Already Completed
            ValidationError: Blank room id
        """
        room_id = _require_text(room_id, "room_id")
        room_password = (room_password or "").strip()

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> Tournament:
            tournament = await self._lock(session, tournament_id)
            if tournament.is_completed:
                raise TournamentClosedError(tournament.id, tournament.status.value)

            tournament.room_id = room_id
            tournament.room_password = room_password
            if tournament.status is TournamentStatus.UPCOMING:
                tournament.status = TournamentStatus.LIVE
            await session.flush()
            events.append(change_of(tournament, Collection.TOURNAMENTS))
            return tournament

        tournament = await self._transact(work)
        logger.info("room_details_updated", tournament_id=tournament_id, status=tournament.status.value)
        return tournament

    async def advance_status(self, tournament_id: str, status: TournamentStatus | str) -> Tournament:
        """Move a tournament forward in its lifecycle.

        Completed is reached only through settlement.

        Raises:
            NotFoundError: Unknown tournament
            InvalidStatusTransitionError: Backwards move, reopening, or completing
                without settlement
        """
        target = TournamentStatus(status)

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> Tournament:
            tournament = await self._lock(session, tournament_id)
            current = tournament.status
            if target is TournamentStatus.COMPLETED or not current.can_move_to(target):
                raise InvalidStatusTransitionError(current.value, target.value)
            if target is not current:
                tournament.status = target
                await session.flush()
                events.append(change_of(tournament, Collection.TOURNAMENTS))
            return tournament

        return await self._transact(work)

    async def get_tournament_view(self, tournament_id: str, user_id: str | None = None) -> TournamentView:
        """Raises NotFoundError for an unknown tournament."""
        async with self._read() as session:
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise NotFoundError("tournament", tournament_id)
            occupancy = await SlotAllocator(session).occupancy(tournament.id)
            joined = False
            if user_id is not None:
                joined = (
                    await session.scalar(
                        select(Participant.id)
                        .where(Participant.tournament_id == tournament.id)
                        .where(Participant.user_id == user_id)
                    )
                    is not None
                )
            return TournamentView(tournament=tournament, current_participants=occupancy, joined=joined)

    async def list_upcoming(self, user_id: str | None = None) -> list[TournamentView]:
        """Upcoming tournaments, soonest first, with occupancy and joined flags."""
        async with self._read() as session:
            tournaments = list(
                (
                    await session.execute(
                        select(Tournament)
                        .where(Tournament.status == TournamentStatus.UPCOMING)
                        .order_by(Tournament.match_time)
                    )
                ).scalars().all()
            )
            if not tournaments:
                return []
            ids = [t.id for t in tournaments]

            counts = dict(
                (
                    await session.execute(
                        select(TournamentSlot.tournament_id, func.count())
                        .where(TournamentSlot.tournament_id.in_(ids))
                        .where(TournamentSlot.participant_id.is_not(None))
                        .group_by(TournamentSlot.tournament_id)
                    )
                ).all()
            )

            joined: set[str] = set()
            if user_id is not None:
                joined = set(
                    (
                        await session.execute(
                            select(Participant.tournament_id)
                            .where(Participant.user_id == user_id)
                            .where(Participant.tournament_id.in_(ids))
                        )
                    ).scalars().all()
                )

            return [
                TournamentView(
                    tournament=t,
                    current_participants=counts.get(t.id, 0),
                    joined=t.id in joined,
                )
                for t in tournaments
            ]

    async def list_participants(self, tournament_id: str) -> list[Participant]:
        async with self._read() as session:
            await self._get(session, tournament_id)
            result = await session.execute(
                select(Participant)
                .where(Participant.tournament_id == tournament_id)
                .order_by(Participant.slot_index)
            )
            return list(result.scalars().all())

    async def get_slot_board(self, tournament_id: str) -> SlotBoard:
        """Slot rows grouped by team index, for the slot picker."""
        async with self._read() as session:
            tournament = await self._get(session, tournament_id)
            slots = await SlotAllocator(session).get_slots(tournament_id)
            result = await session.execute(
                select(Participant).where(Participant.tournament_id == tournament_id)
            )
            participants = list(result.scalars().all())
        return SlotBoard(
            tournament_id=tournament.id,
            teams=group_by_team(slots),
            free_slots=list_free_slots(tournament, participants),
        )

    async def mark_participant_seen(self, participant_id: str, user_id: str) -> Participant:
        """Acknowledge a result. Only the participant's own user may do this.

        Raises:
            NotFoundError: Unknown participant, or one belonging to another user
        """

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> Participant:
            participant = await session.scalar(
                select(Participant).where(Participant.id == participant_id).with_for_update()
            )
            if participant is None or participant.user_id != user_id:
                raise NotFoundError("participant", participant_id)
            if not participant.seen_by_user:
                participant.seen_by_user = True
                await session.flush()
                events.append(change_of(participant, Collection.PARTICIPANTS))
            return participant

        return await self._transact(work)

    async def get_user_tournaments(self, user_id: str) -> list[UserEntry]:
        """A player's registrations, most recent match first."""
        async with self._read() as session:
            result = await session.execute(
                select(Participant, Tournament)
                .join(Tournament, Tournament.id == Participant.tournament_id)
                .where(Participant.user_id == user_id)
                .order_by(Tournament.match_time.desc())
            )
            return [UserEntry(participant=p, tournament=t) for p, t in result.all()]

    async def get_attention_level(self, user_id: str) -> AttentionLevel:
        return attention_level(await self.get_user_tournaments(user_id))

    async def dashboard_stats(self) -> DashboardStats:
        async with self._read() as session:
            total_users = (await session.execute(select(func.count()).select_from(User))).scalar_one()
            tournaments = list((await session.execute(select(Tournament))).scalars().all())

        prize = sum((t.prize_pool for t in tournaments if t.is_completed), ZERO)
        return DashboardStats(
            total_users=total_users,
            total_tournaments=len(tournaments),
            prize_distributed=prize,
            estimated_revenue=estimate_revenue(tournaments, self.default_commission_rate),
        )

    @staticmethod
    async def _get(session: AsyncSession, tournament_id: str) -> Tournament:
        tournament = await session.get(Tournament, tournament_id)
        if tournament is None:
            raise NotFoundError("tournament", tournament_id)
        return tournament

    @staticmethod
    async def _lock(session: AsyncSession, tournament_id: str) -> Tournament:
        tournament = await session.scalar(
            select(Tournament).where(Tournament.id == tournament_id).with_for_update()
        )
        if tournament is None:
            raise NotFoundError("tournament", tournament_id)
        return tournament
