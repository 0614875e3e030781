"""Pydantic schemas for API requests and responses."""

from tourney.schemas.common import (
    BaseSchema,
    ErrorDetail,
    ErrorResponse,
)
from tourney.schemas.requests import (
    CreateTournamentRequest,
    CreateUserRequest,
    JoinTournamentRequest,
    RoomDetailsRequest,
    SettlePerKillRequest,
    SettleWinnerRequest,
    UpdateUsernameRequest,
)
from tourney.schemas.responses import (
    AttentionResponse,
    DashboardStatsResponse,
    MyTournamentListResponse,
    MyTournamentResponse,
    ParticipantListResponse,
    ParticipantResponse,
    PayoutResponse,
    ReconciliationResponse,
    SettlementResponse,
    SlotBoardResponse,
    TournamentListResponse,
    TournamentResponse,
    TransactionListResponse,
    TransactionResponse,
    UserResponse,
    WalletResponse,
)

__all__ = [
    # Common
    "BaseSchema",
    "ErrorDetail",
    "ErrorResponse",
    # Requests
    "CreateTournamentRequest",
    "CreateUserRequest",
    "JoinTournamentRequest",
    "RoomDetailsRequest",
    "SettlePerKillRequest",
    "SettleWinnerRequest",
    "UpdateUsernameRequest",
    # Responses
    "AttentionResponse",
    "DashboardStatsResponse",
    "MyTournamentListResponse",
    "MyTournamentResponse",
    "ParticipantListResponse",
    "ParticipantResponse",
    "PayoutResponse",
    "ReconciliationResponse",
    "SettlementResponse",
    "SlotBoardResponse",
    "TournamentListResponse",
    "TournamentResponse",
    "TransactionListResponse",
    "TransactionResponse",
    "UserResponse",
    "WalletResponse",
]
