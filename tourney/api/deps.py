"""API dependencies: service wiring and caller identity."""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourney.config import Settings
from tourney.events import ChangeFeed
from tourney.models.user import User
from tourney.services.entry import EntryLedger
from tourney.services.settlement import PrizeSettlement
from tourney.services.tournament import TournamentService
from tourney.services.user import AccountService
from tourney.utils.db import RetryPolicy
from tourney.utils.errors import NotFoundError


@dataclass
class Services:
    """Service instances shared by every request of one application."""

    accounts: AccountService
    tournaments: TournamentService
    entries: EntryLedger
    settlement: PrizeSettlement
    change_feed: ChangeFeed
    currency_symbol: str = "₹"

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        change_feed: ChangeFeed | None = None,
    ) -> "Services":
        feed = change_feed or ChangeFeed()
        policy = RetryPolicy.from_settings(settings)
        common = dict(change_feed=feed, retry_policy=policy)
        return cls(
            accounts=AccountService(
                session_factory,
                deposit_amount=settings.simulated_deposit_amount,
                withdrawal_amount=settings.simulated_withdrawal_amount,
                **common,
            ),
            tournaments=TournamentService(
                session_factory,
                default_commission_rate=settings.default_commission_rate,
                default_max_participants=settings.default_max_participants,
                **common,
            ),
            entries=EntryLedger(session_factory, **common),
            settlement=PrizeSettlement(session_factory, **common),
            change_feed=feed,
            currency_symbol=settings.currency_symbol,
        )


def get_services(request: Request) -> Services:
    return request.app.state.services


def _auth_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": {"code": code, "message": message, "details": {}}},
    )


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Caller identity as asserted by the upstream auth layer.

    Raises:
        HTTPException: Header missing
    """
    if not x_user_id:
        raise _auth_error(
            status.HTTP_401_UNAUTHORIZED,
            "AUTH_REQUIRED",
            "Authentication required",
        )
    return x_user_id


async def get_admin_user(
    user_id: Annotated[str, Depends(get_current_user_id)],
    services: Annotated[Services, Depends(get_services)],
) -> User:
    """Caller must be a known admin account."""
    try:
        user = await services.accounts.get_user(user_id)
    except NotFoundError:
        raise _auth_error(
            status.HTTP_401_UNAUTHORIZED,
            "AUTH_USER_NOT_FOUND",
            "User not found",
        ) from None
    if not user.is_admin:
        raise _auth_error(
            status.HTTP_403_FORBIDDEN,
            "ADMIN_REQUIRED",
            "Admin privileges required",
        )
    return user


def require_self(user_id: str, current_user_id: str) -> None:
    """Players may only act on their own wallet and registrations."""
    if user_id != current_user_id:
        raise _auth_error(
            status.HTTP_403_FORBIDDEN,
            "FORBIDDEN",
            "You can only access your own account",
        )


ServicesDep = Annotated[Services, Depends(get_services)]
CurrentUserId = Annotated[str, Depends(get_current_user_id)]
AdminUser = Annotated[User, Depends(get_admin_user)]
