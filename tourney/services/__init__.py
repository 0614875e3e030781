"""Business logic services."""

from tourney.services.entry import EntryLedger, ParticipantCandidate
from tourney.services.settlement import (
    PayoutLine,
    PrizeSettlement,
    SettlementSummary,
    compute_per_kill_payouts,
    validate_kills,
)
from tourney.services.slots import (
    SlotAllocator,
    SlotDescriptor,
    build_slot_layout,
    group_by_team,
    list_free_slots,
)
from tourney.services.tournament import (
    AttentionLevel,
    DashboardStats,
    SlotBoard,
    TournamentService,
    TournamentView,
    UserEntry,
)
from tourney.services.user import AccountService
from tourney.services.wallet import ReconciliationReport, WalletService

__all__ = [
    # Slots
    "SlotAllocator",
    "SlotDescriptor",
    "build_slot_layout",
    "group_by_team",
    "list_free_slots",
    # Entry
    "EntryLedger",
    "ParticipantCandidate",
    # Settlement
    "PrizeSettlement",
    "PayoutLine",
    "SettlementSummary",
    "compute_per_kill_payouts",
    "validate_kills",
    # Tournament
    "TournamentService",
    "TournamentView",
    "UserEntry",
    "AttentionLevel",
    "DashboardStats",
    "SlotBoard",
    # Accounts
    "AccountService",
    "WalletService",
    "ReconciliationReport",
]
