"""Account and participation endpoints.

Endpoints:
- POST /users - Create account
- GET /users/me - Current account
- PATCH /users/me - Change username
- GET /users/me/tournaments - Own registrations
- GET /users/me/attention - Notification level
- POST /participants/{id}/seen - Acknowledge a result
"""

from fastapi import APIRouter, status

from tourney.api.deps import CurrentUserId, ServicesDep
from tourney.schemas import (
    AttentionResponse,
    CreateUserRequest,
    ErrorResponse,
    MyTournamentListResponse,
    MyTournamentResponse,
    ParticipantResponse,
    UpdateUsernameRequest,
    UserResponse,
)

router = APIRouter(prefix="/users", tags=["Users"])
participants_router = APIRouter(prefix="/participants", tags=["Participants"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(body: CreateUserRequest, services: ServicesDep):
    user = await services.accounts.create_user(body.username, body.email)
    return UserResponse.from_model(user)


@router.get("/me", response_model=UserResponse)
async def get_me(user_id: CurrentUserId, services: ServicesDep):
    user = await services.accounts.get_user(user_id)
    return UserResponse.from_model(user)


@router.patch("/me", response_model=UserResponse)
async def update_me(body: UpdateUsernameRequest, user_id: CurrentUserId, services: ServicesDep):
    user = await services.accounts.update_username(user_id, body.username)
    return UserResponse.from_model(user)


@router.get("/me/tournaments", response_model=MyTournamentListResponse)
async def my_tournaments(user_id: CurrentUserId, services: ServicesDep):
    entries = await services.tournaments.get_user_tournaments(user_id)
    return MyTournamentListResponse(items=[MyTournamentResponse.from_entry(e) for e in entries])


@router.get("/me/attention", response_model=AttentionResponse)
async def my_attention(user_id: CurrentUserId, services: ServicesDep):
    """Live room, pending match, unseen result, or nothing."""
    level = await services.tournaments.get_attention_level(user_id)
    return AttentionResponse(level=level.value)


@participants_router.post(
    "/{participant_id}/seen",
    response_model=ParticipantResponse,
    responses={404: {"model": ErrorResponse, "description": "Participant not found"}},
)
async def mark_seen(participant_id: str, user_id: CurrentUserId, services: ServicesDep):
    participant = await services.tournaments.mark_participant_seen(participant_id, user_id)
    return ParticipantResponse.from_model(participant)
