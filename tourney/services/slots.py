"""Slot allocation.

Maps a tournament's ``(mode, max_participants)`` onto numbered slots and
claims one free slot for a joining participant.

Numbering is fixed: slots run 1..max_participants, slot ``i`` belongs to
team ``ceil(i / team_size)`` at position ``i - (team - 1) * team_size``.
Display and payout grouping rely on it.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tourney.models.participant import Participant
from tourney.models.tournament import GameMode, Tournament, TournamentSlot
from tourney.utils.errors import ConfigurationError, SlotTakenError, ValidationError


@dataclass(frozen=True)
class SlotDescriptor:
    """Address of one slot in a layout."""

    slot_index: int
    team_index: int
    position: int


SlotT = TypeVar("SlotT", SlotDescriptor, TournamentSlot)


def team_size_for(mode: GameMode | str) -> int:
    """Slots per team for a mode.

    Raises:
        ConfigurationError: Unknown mode
    """
    try:
        return GameMode(mode).team_size
    except ValueError:
        raise ConfigurationError(
            f"Unknown game mode: {mode}",
            details={"mode": str(mode), "allowed": [m.value for m in GameMode]},
        ) from None


def team_of(slot_index: int, team_size: int) -> int:
    return math.ceil(slot_index / team_size)


def build_slot_layout(mode: GameMode | str, max_participants: int) -> list[SlotDescriptor]:
    """Compute the slot layout of a tournament.

    Args:
        mode: solo, duo or squad
        max_participants: Total slots

    Returns:
        Slot descriptors ordered by slot index

    Raises:
        ConfigurationError: Non-positive capacity, or capacity not divisible
            by the team size
    """
    team_size = team_size_for(mode)

    if isinstance(max_participants, bool) or not isinstance(max_participants, int):
        raise ConfigurationError(
            "Max participants must be an integer",
            details={"maxParticipants": repr(max_participants)},
        )
    if max_participants <= 0:
        raise ConfigurationError(
            "Max participants must be positive",
            details={"maxParticipants": max_participants},
        )
    remainder = max_participants % team_size
    if remainder:
        raise ConfigurationError(
            f"{GameMode(mode).value.capitalize()} requires max participants "
            f"divisible by {team_size}. Remainder: {remainder}",
            details={
                "mode": GameMode(mode).value,
                "teamSize": team_size,
                "maxParticipants": max_participants,
                "remainder": remainder,
            },
        )

    layout = []
    for slot_index in range(1, max_participants + 1):
        team_index = team_of(slot_index, team_size)
        layout.append(
            SlotDescriptor(
                slot_index=slot_index,
                team_index=team_index,
                position=slot_index - (team_index - 1) * team_size,
            )
        )
    return layout


def group_by_team(layout: Iterable[SlotT]) -> dict[int, list[SlotT]]:
    """Group slot descriptors or slot rows into teams, keyed by team index."""
    teams: dict[int, list[SlotT]] = {}
    for slot in layout:
        teams.setdefault(slot.team_index, []).append(slot)
    return teams


def list_free_slots(tournament: Tournament, participants: Iterable[Participant]) -> set[int]:
    """Slot indices no participant references."""
    taken = {p.slot_index for p in participants if p.slot_index is not None}
    return set(range(1, tournament.max_participants + 1)) - taken


def validate_slot_index(tournament: Tournament, slot_index: int) -> None:
    """Raise ValidationError when a slot index is outside the layout."""
    if isinstance(slot_index, bool) or not isinstance(slot_index, int):
        raise ValidationError(
            "Slot index must be an integer",
            details={"slotIndex": repr(slot_index)},
        )
    if not 1 <= slot_index <= tournament.max_participants:
        raise ValidationError(
            f"Slot index out of range (1 to {tournament.max_participants})",
            details={"slotIndex": slot_index, "maxParticipants": tournament.max_participants},
        )


class SlotAllocator:
    """Slot-table reads and claims inside a caller-owned transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def materialize(self, tournament: Tournament) -> list[TournamentSlot]:
        """Create the empty slot rows for a new tournament."""
        layout = build_slot_layout(tournament.mode, tournament.max_participants)
        slots = [
            TournamentSlot(
                tournament_id=tournament.id,
                slot_index=d.slot_index,
                team_index=d.team_index,
                position=d.position,
            )
            for d in layout
        ]
        self.session.add_all(slots)
        return slots

    async def occupancy(self, tournament_id: str) -> int:
        """Number of claimed slots."""
        result = await self.session.execute(
            select(func.count())
            .select_from(TournamentSlot)
            .where(TournamentSlot.tournament_id == tournament_id)
            .where(TournamentSlot.participant_id.is_not(None))
        )
        return result.scalar_one()

    async def get_slots(self, tournament_id: str) -> list[TournamentSlot]:
        result = await self.session.execute(
            select(TournamentSlot)
            .where(TournamentSlot.tournament_id == tournament_id)
            .order_by(TournamentSlot.slot_index)
        )
        return list(result.scalars().all())

    async def is_free(self, tournament_id: str, slot_index: int) -> bool:
        result = await self.session.execute(
            select(TournamentSlot.participant_id)
            .where(TournamentSlot.tournament_id == tournament_id)
            .where(TournamentSlot.slot_index == slot_index)
        )
        return result.scalar_one_or_none() is None

    async def first_free_slot(self, tournament_id: str) -> int | None:
        """Lowest unclaimed slot index, or None when full."""
        result = await self.session.execute(
            select(TournamentSlot.slot_index)
            .where(TournamentSlot.tournament_id == tournament_id)
            .where(TournamentSlot.participant_id.is_(None))
            .order_by(TournamentSlot.slot_index)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def claim_slot(
        self,
        tournament: Tournament,
        participant: Participant,
        slot_index: int,
    ) -> TournamentSlot:
        """Write the participant into a free slot.

        A conditional update: the row changes only while its occupant is
        still null, so of two racing claims exactly one succeeds. Must run
        inside the join transaction after the participant row is flushed.

        Raises:
            ValidationError: Slot index outside the layout
            SlotTakenError: Slot already occupied
        """
        validate_slot_index(tournament, slot_index)

        result = await self.session.execute(
            update(TournamentSlot)
            .where(TournamentSlot.tournament_id == tournament.id)
            .where(TournamentSlot.slot_index == slot_index)
            .where(TournamentSlot.participant_id.is_(None))
            .values(
                participant_id=participant.id,
                user_id=participant.user_id,
                occupant_name=participant.ingame_name,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise SlotTakenError(tournament.id, slot_index)

        slot = await self.session.scalar(
            select(TournamentSlot)
            .where(TournamentSlot.tournament_id == tournament.id)
            .where(TournamentSlot.slot_index == slot_index)
            .execution_options(populate_existing=True)
        )
        return slot
