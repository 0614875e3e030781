"""Wallet API endpoints.

Endpoints:
- GET /wallet/{user_id} - Balance
- GET /wallet/{user_id}/transactions - Ledger, newest first
- GET /wallet/{user_id}/reconcile - Balance against ledger
- POST /wallet/{user_id}/deposit - Simulated deposit
- POST /wallet/{user_id}/withdraw - Simulated withdrawal
"""

from fastapi import APIRouter, Query

from tourney.api.deps import CurrentUserId, ServicesDep, require_self
from tourney.models.wallet import TransactionType
from tourney.schemas import (
    ErrorResponse,
    ReconciliationResponse,
    TransactionListResponse,
    TransactionResponse,
    WalletResponse,
)

router = APIRouter(prefix="/wallet", tags=["Wallet"])


@router.get("/{user_id}", response_model=WalletResponse)
async def get_wallet(user_id: str, current_user_id: CurrentUserId, services: ServicesDep):
    require_self(user_id, current_user_id)
    balance = await services.accounts.get_balance(user_id)
    return WalletResponse(user_id=user_id, balance=balance, currency=services.currency_symbol)


@router.get("/{user_id}/transactions", response_model=TransactionListResponse)
async def get_transactions(
    user_id: str,
    current_user_id: CurrentUserId,
    services: ServicesDep,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    tx_type: TransactionType | None = Query(default=None, alias="type"),
):
    """Transaction history, newest first."""
    require_self(user_id, current_user_id)
    transactions = await services.accounts.get_transactions(
        user_id, limit=limit, offset=offset, tx_type=tx_type
    )
    return TransactionListResponse(items=[TransactionResponse.from_model(tx) for tx in transactions])


@router.get("/{user_id}/reconcile", response_model=ReconciliationResponse)
async def reconcile(user_id: str, current_user_id: CurrentUserId, services: ServicesDep):
    require_self(user_id, current_user_id)
    report = await services.accounts.reconcile(user_id)
    return ReconciliationResponse.from_report(report)


@router.post("/{user_id}/deposit", response_model=TransactionResponse)
async def deposit(user_id: str, current_user_id: CurrentUserId, services: ServicesDep):
    require_self(user_id, current_user_id)
    tx = await services.accounts.simulate_deposit(user_id)
    return TransactionResponse.from_model(tx)


@router.post(
    "/{user_id}/withdraw",
    response_model=TransactionResponse,
    responses={402: {"model": ErrorResponse, "description": "Insufficient balance"}},
)
async def withdraw(user_id: str, current_user_id: CurrentUserId, services: ServicesDep):
    require_self(user_id, current_user_id)
    tx = await services.accounts.simulate_withdrawal(user_id)
    return TransactionResponse.from_model(tx)
