"""API request schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, StrictInt

from tourney.models.tournament import GameMode


class RequestSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


# =============================================================================
# Account Requests
# =============================================================================


class CreateUserRequest(RequestSchema):
    """Account creation request. Accounts made here are never admins."""

    username: str = Field(..., min_length=1, max_length=50)
    email: str = Field(..., min_length=3, max_length=255)


class UpdateUsernameRequest(RequestSchema):
    """Username change request."""

    username: str = Field(..., min_length=1, max_length=50)


# =============================================================================
# Tournament Requests
# =============================================================================


class CreateTournamentRequest(RequestSchema):
    """Tournament creation request. Omitted capacity and commission use server defaults."""

    title: str = Field(..., min_length=1, max_length=200)
    game_name: str = Field(..., min_length=1, max_length=100, alias="gameName")
    match_time: datetime = Field(..., alias="matchTime")
    description: str = ""
    map_name: str = Field(default="", alias="mapName")
    entry_fee: Decimal = Field(default=Decimal("0"), ge=0, alias="entryFee")
    prize_pool: Decimal = Field(default=Decimal("0"), ge=0, alias="prizePool")
    mode: GameMode = GameMode.SOLO
    max_participants: StrictInt | None = Field(default=None, alias="maxParticipants")
    commission_rate: Decimal | None = Field(default=None, ge=0, le=100, alias="commissionRate")
    per_kill_enabled: bool = Field(default=False, alias="perKillEnabled")
    per_kill_prize: Decimal = Field(default=Decimal("0"), ge=0, alias="perKillPrize")


class RoomDetailsRequest(RequestSchema):
    """Room credentials; publishing them makes the tournament Live."""

    room_id: str = Field(..., min_length=1, max_length=100, alias="roomId")
    room_password: str = Field(default="", max_length=100, alias="roomPassword")


class JoinTournamentRequest(RequestSchema):
    """Join request.

    ``entryFee`` is the fee the player was shown; a mismatch with the
    current fee rejects the join.
    """

    ingame_name: str = Field(..., alias="ingameName")
    slot_index: StrictInt | None = Field(default=None, alias="slotIndex")
    entry_fee: Decimal | None = Field(default=None, alias="entryFee")


class SettleWinnerRequest(RequestSchema):
    winner_user_id: str = Field(..., min_length=1, alias="winnerUserId")


class SettlePerKillRequest(RequestSchema):
    """Kill count per participant id; must cover every participant."""

    kills: dict[str, StrictInt]
