"""Database models."""

from tourney.models.base import Base, TimestampMixin, UUIDMixin
from tourney.models.participant import Participant, ParticipantStatus
from tourney.models.tournament import (
    TEAM_SIZES,
    GameMode,
    Tournament,
    TournamentSlot,
    TournamentStatus,
)
from tourney.models.user import User
from tourney.models.wallet import TransactionType, WalletTransaction

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # User
    "User",
    # Tournament
    "Tournament",
    "TournamentSlot",
    "TournamentStatus",
    "GameMode",
    "TEAM_SIZES",
    # Participant
    "Participant",
    "ParticipantStatus",
    # Wallet
    "WalletTransaction",
    "TransactionType",
]
