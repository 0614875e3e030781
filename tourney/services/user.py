"""Account service: users and their wallets.

Wallet movements always go through ``WalletService`` so every balance
change has a ledger entry.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tourney.events import ChangeEvent, ChangeFeed, ChangeOperation, Collection, change_of
from tourney.logging_config import get_logger
from tourney.models.base import ZERO, new_id
from tourney.models.user import User
from tourney.models.wallet import TransactionType, WalletTransaction
from tourney.services.base import TransactionalService
from tourney.services.wallet import ReconciliationReport, WalletService, to_money
from tourney.utils.db import RetryPolicy
from tourney.utils.errors import NotFoundError, ValidationError

logger = get_logger(__name__)

DEFAULT_DEPOSIT_AMOUNT = Decimal("100")
DEFAULT_WITHDRAWAL_AMOUNT = Decimal("50")


class AccountService(TransactionalService):
    """User accounts, wallet balance and history."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        change_feed: ChangeFeed | None = None,
        retry_policy: RetryPolicy | None = None,
        deposit_amount: Decimal = DEFAULT_DEPOSIT_AMOUNT,
        withdrawal_amount: Decimal = DEFAULT_WITHDRAWAL_AMOUNT,
    ):
        super().__init__(session_factory, change_feed=change_feed, retry_policy=retry_policy)
        self.deposit_amount = deposit_amount
        self.withdrawal_amount = withdrawal_amount

    async def create_user(
        self,
        username: str,
        email: str,
        *,
        is_admin: bool = False,
        opening_balance: Decimal | int | str = 0,
    ) -> User:
        """Create an account.

        A non-zero opening balance is booked as a credit so the ledger
        always explains the balance.

        Raises:
            ValidationError: Blank username or email, duplicate email
        """
        username = (username or "").strip()
        email = (email or "").strip().lower()
        if not username:
            raise ValidationError("Username is required", details={"field": "username"})
        if not email:
            raise ValidationError("Email is required", details={"field": "email"})
        opening = to_money(opening_balance, field_name="opening_balance")

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> User:
            user = User(id=new_id(), username=username, email=email, is_admin=is_admin, wallet_balance=ZERO)
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as e:
                raise ValidationError("Email is already registered", details={"email": email}) from e

            if opening > 0:
                tx = await WalletService(session).credit(
                    user.id, opening, description="Opening balance", user=user
                )
                events.append(change_of(tx, Collection.TRANSACTIONS, ChangeOperation.CREATED))
            events.append(change_of(user, Collection.USERS, ChangeOperation.CREATED))
            return user

        user = await self._transact(work)
        logger.info("user_created", user_id=user.id, is_admin=is_admin)
        return user

    async def get_user(self, user_id: str) -> User:
        """Raises NotFoundError for an unknown user."""
        async with self._read() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("user", user_id)
            return user

    async def find_by_email(self, email: str) -> User | None:
        async with self._read() as session:
            return await session.scalar(select(User).where(User.email == email.strip().lower()))

    async def update_username(self, user_id: str, username: str) -> User:
        """Change the account name. Existing registrations keep the old one.

        Raises:
            NotFoundError: Unknown user
            ValidationError: Blank or overlong name
        """
        username = (username or "").strip()
        if not username:
            raise ValidationError("Username is required", details={"field": "username"})
        if len(username) > 50:
            raise ValidationError(
                "Username is too long (max 50 characters)",
                details={"length": len(username)},
            )

        async def work(session: AsyncSession, events: list[ChangeEvent]) -> User:
            user = await WalletService(session).lock_user(user_id)
            user.username = username
            await session.flush()
            events.append(change_of(user, Collection.USERS))
            return user

        return await self._transact(work)

    async def simulate_deposit(self, user_id: str) -> WalletTransaction:
        """Credit the fixed demo deposit amount."""
        return await self._move(user_id, self.deposit_amount, TransactionType.CREDIT, "Simulated deposit")

    async def simulate_withdrawal(self, user_id: str) -> WalletTransaction:
        """Debit the fixed demo withdrawal amount.

        Raises:
            InsufficientBalanceError: Balance below the withdrawal amount
        """
        return await self._move(
            user_id, self.withdrawal_amount, TransactionType.DEBIT, "Simulated withdrawal"
        )

    async def get_balance(self, user_id: str) -> Decimal:
        async with self._read() as session:
            return await WalletService(session).get_balance(user_id)

    async def get_transactions(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        tx_type: TransactionType | None = None,
    ) -> list[WalletTransaction]:
        async with self._read() as session:
            wallet = WalletService(session)
            await wallet.get_balance(user_id)
            return await wallet.get_transactions(user_id, limit=limit, offset=offset, tx_type=tx_type)

    async def reconcile(self, user_id: str) -> ReconciliationReport:
        async with self._read() as session:
            return await WalletService(session).reconcile(user_id)

    async def _move(
        self,
        user_id: str,
        amount: Decimal,
        tx_type: TransactionType,
        description: str,
    ) -> WalletTransaction:
        async def work(session: AsyncSession, events: list[ChangeEvent]) -> WalletTransaction:
            wallet = WalletService(session)
            user = await wallet.lock_user(user_id)
            tx = await wallet.transfer(user_id, amount, tx_type, description=description, user=user)
            events.append(change_of(tx, Collection.TRANSACTIONS, ChangeOperation.CREATED))
            events.append(change_of(user, Collection.USERS))
            return tx

        return await self._transact(work)
