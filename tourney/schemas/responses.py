"""API response schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from tourney.models.participant import Participant
from tourney.models.tournament import TournamentSlot, TournamentStatus
from tourney.models.user import User
from tourney.models.wallet import WalletTransaction
from tourney.schemas.common import BaseSchema
from tourney.services.settlement import PayoutLine, SettlementSummary
from tourney.services.tournament import DashboardStats, SlotBoard, TournamentView, UserEntry
from tourney.services.wallet import ReconciliationReport


# =============================================================================
# Account Responses
# =============================================================================


class UserResponse(BaseSchema):
    id: str
    username: str
    email: str
    wallet_balance: Decimal = Field(..., alias="walletBalance")
    is_admin: bool = Field(..., alias="isAdmin")

    @classmethod
    def from_model(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            wallet_balance=user.wallet_balance,
            is_admin=user.is_admin,
        )


class WalletResponse(BaseSchema):
    user_id: str = Field(..., alias="userId")
    balance: Decimal
    currency: str


class TransactionResponse(BaseSchema):
    id: str
    type: str
    amount: Decimal
    balance_before: Decimal = Field(..., alias="balanceBefore")
    balance_after: Decimal = Field(..., alias="balanceAfter")
    description: str
    tournament_id: str | None = Field(None, alias="tournamentId")
    created_at: datetime = Field(..., alias="createdAt")

    @classmethod
    def from_model(cls, tx: WalletTransaction) -> "TransactionResponse":
        return cls(
            id=tx.id,
            type=tx.tx_type.value,
            amount=tx.amount,
            balance_before=tx.balance_before,
            balance_after=tx.balance_after,
            description=tx.description,
            tournament_id=tx.tournament_id,
            created_at=tx.created_at,
        )


class TransactionListResponse(BaseSchema):
    items: list[TransactionResponse]


class ReconciliationResponse(BaseSchema):
    user_id: str = Field(..., alias="userId")
    balance: Decimal
    ledger_balance: Decimal = Field(..., alias="ledgerBalance")
    drift: Decimal
    entries: int
    tampered_entries: list[str] = Field(default_factory=list, alias="tamperedEntries")
    is_consistent: bool = Field(..., alias="isConsistent")

    @classmethod
    def from_report(cls, report: ReconciliationReport) -> "ReconciliationResponse":
        return cls(
            user_id=report.user_id,
            balance=report.balance,
            ledger_balance=report.ledger_balance,
            drift=report.drift,
            entries=report.entries,
            tampered_entries=report.tampered_entries,
            is_consistent=report.is_consistent,
        )


class AttentionResponse(BaseSchema):
    level: str


# =============================================================================
# Tournament Responses
# =============================================================================


class TournamentResponse(BaseSchema):
    """Tournament as shown to players.

    Room credentials are included only for a Live tournament the caller joined.
    """

    id: str
    title: str
    game_name: str = Field(..., alias="gameName")
    match_time: datetime = Field(..., alias="matchTime")
    description: str
    map_name: str = Field(..., alias="mapName")
    entry_fee: Decimal = Field(..., alias="entryFee")
    prize_pool: Decimal = Field(..., alias="prizePool")
    commission_rate: Decimal = Field(..., alias="commissionRate")
    status: str
    mode: str
    max_participants: int = Field(..., alias="maxParticipants")
    current_participants: int | None = Field(None, alias="currentParticipants")
    per_kill_enabled: bool = Field(..., alias="perKillEnabled")
    per_kill_prize: Decimal = Field(..., alias="perKillPrize")
    joined: bool = False
    room_id: str | None = Field(None, alias="roomId")
    room_password: str | None = Field(None, alias="roomPassword")

    @classmethod
    def from_view(cls, view: TournamentView, *, reveal_room: bool = False) -> "TournamentResponse":
        t = view.tournament
        show_room = reveal_room or (view.joined and t.status is TournamentStatus.LIVE)
        return cls(
            id=t.id,
            title=t.title,
            game_name=t.game_name,
            match_time=t.match_time,
            description=t.description,
            map_name=t.map_name,
            entry_fee=t.entry_fee,
            prize_pool=t.prize_pool,
            commission_rate=t.commission_rate,
            status=t.status.value,
            mode=t.mode.value,
            max_participants=t.max_participants,
            current_participants=view.current_participants,
            per_kill_enabled=t.per_kill_enabled,
            per_kill_prize=t.per_kill_prize,
            joined=view.joined,
            room_id=t.room_id if show_room else None,
            room_password=t.room_password if show_room else None,
        )


class TournamentListResponse(BaseSchema):
    items: list[TournamentResponse]


class SlotResponse(BaseSchema):
    slot_index: int = Field(..., alias="slotIndex")
    position: int
    occupied: bool
    occupant_name: str | None = Field(None, alias="occupantName")

    @classmethod
    def from_model(cls, slot: TournamentSlot) -> "SlotResponse":
        return cls(
            slot_index=slot.slot_index,
            position=slot.position,
            occupied=not slot.is_free,
            occupant_name=slot.occupant_name,
        )


class TeamResponse(BaseSchema):
    team_index: int = Field(..., alias="teamIndex")
    slots: list[SlotResponse]


class SlotBoardResponse(BaseSchema):
    tournament_id: str = Field(..., alias="tournamentId")
    teams: list[TeamResponse]
    free_slots: list[int] = Field(..., alias="freeSlots")

    @classmethod
    def from_board(cls, board: SlotBoard) -> "SlotBoardResponse":
        return cls(
            tournament_id=board.tournament_id,
            teams=[
                TeamResponse(team_index=team, slots=[SlotResponse.from_model(s) for s in slots])
                for team, slots in sorted(board.teams.items())
            ],
            free_slots=sorted(board.free_slots),
        )


class ParticipantResponse(BaseSchema):
    id: str
    user_id: str = Field(..., alias="userId")
    tournament_id: str = Field(..., alias="tournamentId")
    username: str
    ingame_name: str = Field(..., alias="ingameName")
    slot_index: int = Field(..., alias="slotIndex")
    team_index: int = Field(..., alias="teamIndex")
    status: str
    kills: int
    seen_by_user: bool = Field(..., alias="seenByUser")
    joined_at: datetime = Field(..., alias="joinedAt")

    @classmethod
    def from_model(cls, p: Participant) -> "ParticipantResponse":
        return cls(
            id=p.id,
            user_id=p.user_id,
            tournament_id=p.tournament_id,
            username=p.username,
            ingame_name=p.ingame_name,
            slot_index=p.slot_index,
            team_index=p.team_index,
            status=p.status.value,
            kills=p.kills,
            seen_by_user=p.seen_by_user,
            joined_at=p.joined_at,
        )


class ParticipantListResponse(BaseSchema):
    items: list[ParticipantResponse]


class MyTournamentResponse(BaseSchema):
    participant: ParticipantResponse
    tournament: TournamentResponse

    @classmethod
    def from_entry(cls, entry: UserEntry) -> "MyTournamentResponse":
        # Occupancy is not loaded for a player's own list
        view = TournamentView(tournament=entry.tournament, current_participants=0, joined=True)
        tournament = TournamentResponse.from_view(view).model_copy(update={"current_participants": None})
        return cls(
            participant=ParticipantResponse.from_model(entry.participant),
            tournament=tournament,
        )


class MyTournamentListResponse(BaseSchema):
    items: list[MyTournamentResponse]


# =============================================================================
# Settlement Responses
# =============================================================================


class PayoutResponse(BaseSchema):
    participant_id: str = Field(..., alias="participantId")
    user_id: str = Field(..., alias="userId")
    ingame_name: str = Field(..., alias="ingameName")
    kills: int
    amount: Decimal
    status: str
    transaction_id: str | None = Field(None, alias="transactionId")

    @classmethod
    def from_line(cls, line: PayoutLine) -> "PayoutResponse":
        return cls(
            participant_id=line.participant_id,
            user_id=line.user_id,
            ingame_name=line.ingame_name,
            kills=line.kills,
            amount=line.amount,
            status=line.status.value,
            transaction_id=line.transaction_id,
        )


class SettlementResponse(BaseSchema):
    tournament_id: str = Field(..., alias="tournamentId")
    mode: str
    total_paid: Decimal = Field(..., alias="totalPaid")
    winners: list[str]
    payouts: list[PayoutResponse]
    settled_at: datetime = Field(..., alias="settledAt")

    @classmethod
    def from_summary(cls, summary: SettlementSummary) -> "SettlementResponse":
        return cls(
            tournament_id=summary.tournament_id,
            mode=summary.mode,
            total_paid=summary.total_paid,
            winners=[p.participant_id for p in summary.winners],
            payouts=[PayoutResponse.from_line(p) for p in summary.payouts],
            settled_at=summary.settled_at,
        )


# =============================================================================
# Admin Responses
# =============================================================================


class DashboardStatsResponse(BaseSchema):
    total_users: int = Field(..., alias="totalUsers")
    total_tournaments: int = Field(..., alias="totalTournaments")
    prize_distributed: Decimal = Field(..., alias="prizeDistributed")
    estimated_revenue: Decimal = Field(..., alias="estimatedRevenue")

    @classmethod
    def from_stats(cls, stats: DashboardStats) -> "DashboardStatsResponse":
        return cls(
            total_users=stats.total_users,
            total_tournaments=stats.total_tournaments,
            prize_distributed=stats.prize_distributed,
            estimated_revenue=stats.estimated_revenue,
        )
