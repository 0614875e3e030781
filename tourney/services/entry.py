"""Entry ledger: the atomic "join tournament" transaction.

The only place money moves on the player side. All checks and all writes
share one transaction with the tournament and user rows locked, so a join
either fully happens (fee debited, ledger entry appended, participant
created, slot claimed) or leaves no trace.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tourney.events import ChangeEvent, ChangeOperation, Collection, change_of
from tourney.logging_config import get_logger, tournament_context
from tourney.models.participant import Participant, ParticipantStatus
from tourney.models.tournament import Tournament, TournamentStatus
from tourney.services.base import TransactionalService
from tourney.services.slots import SlotAllocator, team_of, validate_slot_index
from tourney.services.wallet import WalletService, to_money
from tourney.utils.errors import (
    AlreadyJoinedError,
    InsufficientBalanceError,
    NotFoundError,
    SlotTakenError,
    TournamentClosedError,
    TournamentFullError,
    TourneyError,
    ValidationError,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class ParticipantCandidate:
    """A player about to join: who they are and the name they play under."""

    user_id: str
    display_name: str


def _clean_display_name(display_name: str | None) -> str:
    name = (display_name or "").strip()
    if not name:
        raise ValidationError("Please enter your in-game name.")
    if len(name) > 100:
        raise ValidationError(
            "In-game name is too long (max 100 characters)",
            details={"length": len(name)},
        )
    return name


class EntryLedger(TransactionalService):
    """Joins players to tournaments."""

    async def join_tournament(
        self,
        user_id: str,
        tournament_id: str,
        entry_fee: Decimal | int | str | None = None,
        chosen_slot: int | None = None,
        display_name: str | None = None,
    ) -> Participant:
        """Join a tournament, paying the entry fee and claiming a slot.

        Checks run in this order, each aborting with no writes:
        tournament exists, is Upcoming, is not full, user not already
        joined, chosen slot still free, balance covers the fee.

        Args:
            user_id: Joining user
            tournament_id: Tournament to join
            entry_fee: Fee the player was shown; rejected if it no longer
                matches the stored fee (None skips the comparison)
            chosen_slot: Pre-selected slot index, or None for the lowest free slot
            display_name: In-game name

        Returns:
            The created Participant

        Raises:
            NotFoundError: Unknown tournament or user
            TournamentClosedError: Tournament is not Upcoming
            TournamentFullError: Every slot is taken
            AlreadyJoinedError: User already has a registration
            SlotTakenError: Chosen slot was claimed first
            InsufficientBalanceError: Balance below the entry fee
            ValidationError: Bad name, slot index or stale fee quote
        """
        name = _clean_display_name(display_name)
        quoted_fee = to_money(entry_fee, field_name="entry_fee") if entry_fee is not None else None

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> Participant:
            return await self._join(
                session,
                events,
                user_id=user_id,
                tournament_id=tournament_id,
                quoted_fee=quoted_fee,
                chosen_slot=chosen_slot,
                name=name,
            )

        with tournament_context(tournament_id, user_id=user_id):
            try:
                participant = await self._transact(work)
            except TourneyError as e:
                logger.info("join_rejected", slot_index=chosen_slot, code=e.code)
                raise

            logger.info(
                "tournament_joined",
                participant_id=participant.id,
                slot_index=participant.slot_index,
                team_index=participant.team_index,
            )
        return participant

    async def claim_slot(
        self,
        tournament_id: str,
        candidate: ParticipantCandidate,
        requested_slot_index: int,
    ) -> Participant:
        """Join with a specific slot.

        Slot claiming is never committed on its own; it is the join
        transaction with a mandatory slot, so a slot is never held unpaid.
        """
        return await self.join_tournament(
            user_id=candidate.user_id,
            tournament_id=tournament_id,
            chosen_slot=requested_slot_index,
            display_name=candidate.display_name,
        )

    async def _join(
        self,
        session: AsyncSession,
        events: list[ChangeEvent],
        *,
        user_id: str,
        tournament_id: str,
        quoted_fee: Decimal | None,
        chosen_slot: int | None,
        name: str,
    ) -> Participant:
        allocator = SlotAllocator(session)
        wallet = WalletService(session)

        # 1. Tournament exists
        tournament = await session.scalar(
            select(Tournament).where(Tournament.id == tournament_id).with_for_update()
        )
        if tournament is None:
            raise NotFoundError("tournament", tournament_id)

        if quoted_fee is not None and quoted_fee != tournament.entry_fee:
            raise ValidationError(
                "Entry fee has changed, please review and try again",
                details={"quoted": str(quoted_fee), "current": str(tournament.entry_fee)},
            )

        # 2. Open for registration
        if tournament.status is not TournamentStatus.UPCOMING:
            raise TournamentClosedError(tournament.id, tournament.status.value)

        # 3. Capacity
        occupancy = await allocator.occupancy(tournament.id)
        if occupancy >= tournament.max_participants:
            raise TournamentFullError(tournament.id, tournament.max_participants)

        # 4. One registration per user
        existing = await session.scalar(
            select(Participant.id)
            .where(Participant.tournament_id == tournament.id)
            .where(Participant.user_id == user_id)
        )
        if existing is not None:
            raise AlreadyJoinedError(tournament.id, user_id)

        # 5. Slot still free
        if chosen_slot is not None:
            validate_slot_index(tournament, chosen_slot)
            if not await allocator.is_free(tournament.id, chosen_slot):
                raise SlotTakenError(tournament.id, chosen_slot)
            slot_index = chosen_slot
        else:
            slot_index = await allocator.first_free_slot(tournament.id)
            if slot_index is None:
                raise TournamentFullError(tournament.id, tournament.max_participants)

        # 6. Balance covers the fee
        user = await wallet.lock_user(user_id)
        fee = tournament.entry_fee
        if user.wallet_balance < fee:
            raise InsufficientBalanceError(user.wallet_balance, fee)

        participant = Participant(
            user_id=user_id,
            tournament_id=tournament.id,
            username=user.username,
            ingame_name=name,
            slot_index=slot_index,
            team_index=team_of(slot_index, tournament.team_size),
            status=ParticipantStatus.JOINED,
            kills=0,
            seen_by_user=False,
        )
        session.add(participant)
        try:
            await session.flush()
        except IntegrityError as e:
            # A concurrent join slipped past the checks; the constraint decides
            if "user" in str(e.orig):
                raise AlreadyJoinedError(tournament.id, user_id) from e
            raise SlotTakenError(tournament.id, slot_index) from e

        await allocator.claim_slot(tournament, participant, slot_index)

        if fee > 0:
            tx = await wallet.debit(
                user_id,
                fee,
                description=f"Entry fee for {tournament.title}",
                tournament_id=tournament.id,
                user=user,
            )
            events.append(change_of(tx, Collection.TRANSACTIONS, ChangeOperation.CREATED))
            events.append(change_of(user, Collection.USERS))

        events.append(change_of(participant, Collection.PARTICIPANTS, ChangeOperation.CREATED))
        tournament_event = change_of(tournament, Collection.TOURNAMENTS)
        tournament_event.data["current_participants"] = occupancy + 1
        events.append(tournament_event)

        return participant
