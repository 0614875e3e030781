"""Custom exception classes for tournament errors.

Provides structured error handling with error codes and user-friendly messages.
Every business rule violation raised by the services is a ``TourneyError``;
callers surface ``code`` and ``message`` verbatim.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for tournament errors."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TRANSIENT_ERROR = "TRANSIENT_ERROR"

    # Setup errors
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"

    # Lookup errors
    TOURNAMENT_NOT_FOUND = "TOURNAMENT_NOT_FOUND"
    PARTICIPANT_NOT_FOUND = "PARTICIPANT_NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"

    # Tournament state errors
    TOURNAMENT_CLOSED = "TOURNAMENT_CLOSED"
    TOURNAMENT_FULL = "TOURNAMENT_FULL"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"

    # Entry errors
    ALREADY_JOINED = "ALREADY_JOINED"
    SLOT_TAKEN = "SLOT_TAKEN"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"

    # Validation errors
    INVALID_PAYLOAD = "INVALID_PAYLOAD"


class TourneyError(Exception):
    """Base exception for tournament-related errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
        recoverable: Whether the caller can fix the request and retry
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
        recoverable: bool = True,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ConfigurationError(TourneyError):
    """Raised when a tournament setup is invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_CONFIGURATION,
            message=message,
            details=details,
            recoverable=True,
        )


class NotFoundError(TourneyError):
    """Raised when a referenced tournament, participant or user is missing."""

    def __init__(self, kind: str, entity_id: str):
        code = {
            "tournament": ErrorCode.TOURNAMENT_NOT_FOUND,
            "participant": ErrorCode.PARTICIPANT_NOT_FOUND,
            "user": ErrorCode.USER_NOT_FOUND,
        }.get(kind, ErrorCode.INTERNAL_ERROR)
        super().__init__(
            code=code,
            message=f"{kind.capitalize()} not found: {entity_id}",
            details={"kind": kind, "id": entity_id},
            recoverable=False,
        )
        self.kind = kind
        self.entity_id = entity_id


class TournamentClosedError(TourneyError):
    """Raised when a tournament no longer accepts the requested operation."""

    def __init__(self, tournament_id: str, status: str):
        super().__init__(
            code=ErrorCode.TOURNAMENT_CLOSED,
            message=f"Tournament is no longer available (status: {status})",
            details={"tournamentId": tournament_id, "status": status},
            recoverable=False,
        )


class TournamentFullError(TourneyError):
    """Raised when every slot of a tournament is occupied."""

    def __init__(self, tournament_id: str, max_participants: int):
        super().__init__(
            code=ErrorCode.TOURNAMENT_FULL,
            message="Tournament is already full",
            details={
                "tournamentId": tournament_id,
                "maxParticipants": max_participants,
            },
            recoverable=False,
        )


class InvalidStatusTransitionError(TourneyError):
    """Raised when a status change would move a tournament backwards."""

    def __init__(self, current: str, requested: str):
        super().__init__(
            code=ErrorCode.INVALID_STATUS_TRANSITION,
            message=f"Cannot move tournament from {current} to {requested}",
            details={"current": current, "requested": requested},
            recoverable=False,
        )


class AlreadyJoinedError(TourneyError):
    """Raised when a user registers twice for one tournament."""

    def __init__(self, tournament_id: str, user_id: str):
        super().__init__(
            code=ErrorCode.ALREADY_JOINED,
            message="You have already joined this tournament",
            details={"tournamentId": tournament_id, "userId": user_id},
            recoverable=False,
        )


class SlotTakenError(TourneyError):
    """Raised when the selected slot was claimed by someone else."""

    def __init__(self, tournament_id: str, slot_index: int):
        super().__init__(
            code=ErrorCode.SLOT_TAKEN,
            message="Selected slot is already taken. Please choose another.",
            details={"tournamentId": tournament_id, "slotIndex": slot_index},
            recoverable=True,
        )
        self.slot_index = slot_index


class InsufficientBalanceError(TourneyError):
    """Raised when a wallet cannot cover a debit."""

    def __init__(self, balance: Decimal, required: Decimal):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_BALANCE,
            message=f"Insufficient balance: {balance}, required: {required}",
            details={"balance": str(balance), "required": str(required)},
            recoverable=True,
        )


class ValidationError(TourneyError):
    """Raised for malformed or incomplete input."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INVALID_PAYLOAD,
            message=message,
            details=details,
            recoverable=True,
        )


class TransientError(TourneyError):
    """Raised when the store stays unavailable after bounded retries."""

    def __init__(self, message: str = "Service temporarily unavailable, try again"):
        super().__init__(
            code=ErrorCode.TRANSIENT_ERROR,
            message=message,
            recoverable=True,
        )
