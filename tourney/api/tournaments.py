"""Tournament API endpoints.

Endpoints:
- POST /tournaments - Create tournament (admin)
- GET /tournaments/upcoming - Lobby of Upcoming tournaments
- GET /tournaments/{id} - Tournament detail
- GET /tournaments/{id}/slots - Slot board
- GET /tournaments/{id}/participants - Registrations
- POST /tournaments/{id}/room - Publish room credentials (admin)
- POST /tournaments/{id}/join - Join, paying the entry fee
- POST /tournaments/{id}/settle/winner - Winner-take-all settlement (admin)
- POST /tournaments/{id}/settle/per-kill - Per-kill settlement (admin)
- POST /tournaments/{id}/settle/per-kill/preview - Per-kill payout preview (admin)
"""

from fastapi import APIRouter, status

from tourney.api.deps import AdminUser, CurrentUserId, ServicesDep
from tourney.schemas import (
    CreateTournamentRequest,
    ErrorResponse,
    JoinTournamentRequest,
    ParticipantListResponse,
    ParticipantResponse,
    PayoutResponse,
    RoomDetailsRequest,
    SettlementResponse,
    SettlePerKillRequest,
    SettleWinnerRequest,
    SlotBoardResponse,
    TournamentListResponse,
    TournamentResponse,
)
from tourney.services.tournament import TournamentView

router = APIRouter(prefix="/tournaments", tags=["Tournaments"])


@router.post(
    "",
    response_model=TournamentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Invalid configuration"}},
)
async def create_tournament(
    body: CreateTournamentRequest,
    admin: AdminUser,
    services: ServicesDep,
):
    """Create an Upcoming tournament and its slot table."""
    tournament = await services.tournaments.create_tournament(
        title=body.title,
        game_name=body.game_name,
        match_time=body.match_time,
        entry_fee=body.entry_fee,
        prize_pool=body.prize_pool,
        description=body.description,
        map_name=body.map_name,
        mode=body.mode,
        max_participants=body.max_participants,
        commission_rate=body.commission_rate,
        per_kill_enabled=body.per_kill_enabled,
        per_kill_prize=body.per_kill_prize,
    )
    return TournamentResponse.from_view(
        TournamentView(tournament=tournament, current_participants=0),
        reveal_room=True,
    )


@router.get("/upcoming", response_model=TournamentListResponse)
async def list_upcoming(user_id: CurrentUserId, services: ServicesDep):
    """Upcoming tournaments, soonest first."""
    views = await services.tournaments.list_upcoming(user_id)
    return TournamentListResponse(items=[TournamentResponse.from_view(v) for v in views])


@router.get(
    "/{tournament_id}",
    response_model=TournamentResponse,
    responses={404: {"model": ErrorResponse, "description": "Tournament not found"}},
)
async def get_tournament(tournament_id: str, user_id: CurrentUserId, services: ServicesDep):
    view = await services.tournaments.get_tournament_view(tournament_id, user_id)
    return TournamentResponse.from_view(view)


@router.get("/{tournament_id}/slots", response_model=SlotBoardResponse)
async def get_slot_board(tournament_id: str, user_id: CurrentUserId, services: ServicesDep):
    """Slots grouped by team, with the free ones listed."""
    board = await services.tournaments.get_slot_board(tournament_id)
    return SlotBoardResponse.from_board(board)


@router.get("/{tournament_id}/participants", response_model=ParticipantListResponse)
async def list_participants(tournament_id: str, user_id: CurrentUserId, services: ServicesDep):
    participants = await services.tournaments.list_participants(tournament_id)
    return ParticipantListResponse(items=[ParticipantResponse.from_model(p) for p in participants])


@router.post(
    "/{tournament_id}/room",
    response_model=TournamentResponse,
    responses={409: {"model": ErrorResponse, "description": "Tournament already completed"}},
)
async def update_room_details(
    tournament_id: str,
    body: RoomDetailsRequest,
    admin: AdminUser,
    services: ServicesDep,
):
    """Publish room credentials. An Upcoming tournament goes Live."""
    await services.tournaments.update_room_details(tournament_id, body.room_id, body.room_password)
    view = await services.tournaments.get_tournament_view(tournament_id)
    return TournamentResponse.from_view(view, reveal_room=True)


@router.post(
    "/{tournament_id}/join",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        402: {"model": ErrorResponse, "description": "Insufficient balance"},
        404: {"model": ErrorResponse, "description": "Tournament not found"},
        409: {"model": ErrorResponse, "description": "Closed, full, already joined or slot taken"},
    },
)
async def join_tournament(
    tournament_id: str,
    body: JoinTournamentRequest,
    user_id: CurrentUserId,
    services: ServicesDep,
):
    """Join a tournament, paying the entry fee from the wallet."""
    participant = await services.entries.join_tournament(
        user_id=user_id,
        tournament_id=tournament_id,
        entry_fee=body.entry_fee,
        chosen_slot=body.slot_index,
        display_name=body.ingame_name,
    )
    return ParticipantResponse.from_model(participant)


@router.post(
    "/{tournament_id}/settle/winner",
    response_model=SettlementResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Per-kill tournament"},
        404: {"model": ErrorResponse, "description": "Tournament or winner not found"},
        409: {"model": ErrorResponse, "description": "Already completed"},
    },
)
async def settle_winner(
    tournament_id: str,
    body: SettleWinnerRequest,
    admin: AdminUser,
    services: ServicesDep,
):
    """Pay the whole prize pool to the winner and complete the tournament."""
    summary = await services.settlement.settle_winner(tournament_id, body.winner_user_id)
    return SettlementResponse.from_summary(summary)


@router.post(
    "/{tournament_id}/settle/per-kill",
    response_model=SettlementResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid kill sheet"},
        404: {"model": ErrorResponse, "description": "Tournament not found"},
        409: {"model": ErrorResponse, "description": "Already completed"},
    },
)
async def settle_per_kill(
    tournament_id: str,
    body: SettlePerKillRequest,
    admin: AdminUser,
    services: ServicesDep,
):
    """Pay every participant for their kills and complete the tournament."""
    summary = await services.settlement.settle_per_kill(tournament_id, body.kills)
    return SettlementResponse.from_summary(summary)


@router.post("/{tournament_id}/settle/per-kill/preview", response_model=list[PayoutResponse])
async def preview_per_kill(
    tournament_id: str,
    body: SettlePerKillRequest,
    admin: AdminUser,
    services: ServicesDep,
):
    lines = await services.settlement.preview_per_kill(tournament_id, body.kills)
    return [PayoutResponse.from_line(line) for line in lines]
