"""Participant model: one player's registration in one tournament."""

from datetime import datetime
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
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tourney.models.base import Base, UUIDMixin, utcnow

if TYPE_CHECKING:
    from tourney.models.tournament import Tournament


class ParticipantStatus(str, Enum):
    """Participant outcome. Winner/Completed are only set by settlement."""

    JOINED = "Joined"
    WINNER = "Winner"
    COMPLETED = "Completed"


class Participant(Base, UUIDMixin):
    """Tournament registration."""

    __tablename__ = "participants"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Account name at join time and the in-game name the player typed
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    ingame_name: Mapped[str] = mapped_column(String(100), nullable=False)

    slot_index: Mapped[int] = mapped_column(Integer, nullable=False)
    team_index: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[ParticipantStatus] = mapped_column(
        SQLEnum(ParticipantStatus, values_callable=lambda e: [m.value for m in e]),
        default=ParticipantStatus.JOINED,
        nullable=False,
    )
    kills: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    seen_by_user: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    tournament: Mapped["Tournament"] = relationship("Tournament", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_participants_tournament_user"),
        UniqueConstraint("tournament_id", "slot_index", name="uq_participants_tournament_slot"),
        CheckConstraint("kills >= 0", name="ck_participants_kills"),
    )

    @property
    def is_settled(self) -> bool:
        return self.status is not ParticipantStatus.JOINED

    def __repr__(self) -> str:
        return f"<Participant {self.ingame_name} slot={self.slot_index} status={self.status.value}>"
