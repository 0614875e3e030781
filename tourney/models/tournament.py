"""Tournament and slot-table models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tourney.models.base import ZERO, Base, Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from tourney.models.participant import Participant


class TournamentStatus(str, Enum):
    """Tournament lifecycle status. Only ever moves forward."""

    UPCOMING = "Upcoming"
    LIVE = "Live"
    COMPLETED = "Completed"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def can_move_to(self, target: "TournamentStatus") -> bool:
        """Whether ``target`` is this status or a later one, and not reopened."""
        if self is TournamentStatus.COMPLETED:
            return False
        return target.rank >= self.rank


_STATUS_ORDER = [
    TournamentStatus.UPCOMING,
    TournamentStatus.LIVE,
    TournamentStatus.COMPLETED,
]


class GameMode(str, Enum):
    """Team format of a tournament."""

    SOLO = "solo"
    DUO = "duo"
    SQUAD = "squad"

    @property
    def team_size(self) -> int:
        return TEAM_SIZES[self]


TEAM_SIZES = {
    GameMode.SOLO: 1,
    GameMode.DUO: 2,
    GameMode.SQUAD: 4,
}


class Tournament(Base, UUIDMixin, TimestampMixin):
    """One scheduled match event.

    Occupancy is not stored: it is the number of claimed rows in
    ``tournament_slots``.
    """

    __tablename__ = "tournaments"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    game_name: Mapped[str] = mapped_column(String(100), nullable=False)
    match_time: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    map_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    # Money
    entry_fee: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)
    prize_pool: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
        comment="Percentage 0-100",
    )

    status: Mapped[TournamentStatus] = mapped_column(
        SQLEnum(TournamentStatus, values_callable=lambda e: [m.value for m in e]),
        default=TournamentStatus.UPCOMING,
        nullable=False,
        index=True,
    )

    # Room credentials, released when the tournament goes Live
    room_id: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    room_password: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    mode: Mapped[GameMode] = mapped_column(
        SQLEnum(GameMode, values_callable=lambda e: [m.value for m in e]),
        default=GameMode.SOLO,
        nullable=False,
    )
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)

    # Prize scheme, fixed at creation
    per_kill_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    per_kill_prize: Mapped[Decimal] = mapped_column(Money, default=ZERO, nullable=False)

    slots: Mapped[list["TournamentSlot"]] = relationship(
        "TournamentSlot",
        back_populates="tournament",
        order_by="TournamentSlot.slot_index",
        cascade="all, delete-orphan",
    )
    participants: Mapped[list["Participant"]] = relationship(
        "Participant",
        back_populates="tournament",
    )

    __table_args__ = (
        CheckConstraint("max_participants > 0", name="ck_tournaments_capacity"),
        CheckConstraint("entry_fee >= 0", name="ck_tournaments_entry_fee"),
        CheckConstraint("prize_pool >= 0", name="ck_tournaments_prize_pool"),
        CheckConstraint(
            "commission_rate >= 0 AND commission_rate <= 100",
            name="ck_tournaments_commission",
        ),
    )

    @property
    def team_size(self) -> int:
        return self.mode.team_size

    @property
    def is_completed(self) -> bool:
        return self.status is TournamentStatus.COMPLETED

    def __repr__(self) -> str:
        return f"<Tournament {self.title} status={self.status.value}>"


class TournamentSlot(Base, UUIDMixin):
    """One addressable slot. Occupant columns stay null until claimed."""

    __tablename__ = "tournament_slots"

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    team_index: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    participant_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("participants.id", ondelete="SET NULL"),
        nullable=True,
    )
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    occupant_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    tournament: Mapped["Tournament"] = relationship("Tournament", back_populates="slots")

    __table_args__ = (
        UniqueConstraint("tournament_id", "slot_index", name="uq_slots_tournament_slot"),
    )

    @property
    def is_free(self) -> bool:
        return self.participant_id is None

    def __repr__(self) -> str:
        return f"<TournamentSlot #{self.slot_index} team={self.team_index}>"
