"""Wallet Service for balance operations.

Every balance change goes through ``WalletService.transfer``, which locks
the user row, checks the balance for debits, applies the delta and appends
a ledger entry with an integrity hash, all inside the caller's transaction.

Features:
- Row-locked credits and debits (no read-now, write-later)
- Append-only ledger with balance before/after
- SHA-256 integrity hash per entry
- Balance/ledger reconciliation
"""

import hashlib
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourney.logging_config import get_logger
from tourney.models.base import ZERO
from tourney.models.user import User
from tourney.models.wallet import TransactionType, WalletTransaction
from tourney.utils.errors import InsufficientBalanceError, NotFoundError, ValidationError

logger = get_logger(__name__)

CENT = Decimal("0.01")


def to_money(value: Decimal | int | str, *, field_name: str = "amount") -> Decimal:
    """Normalise a money value to two decimal places.

    Raises:
        ValidationError: Not a finite, non-negative number
    """
    if isinstance(value, (bool, float)):
        # floats carry binary rounding; callers pass Decimal, int or str
        raise ValidationError(
            f"{field_name} must be a decimal value",
            details={field_name: repr(value)},
        )
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(
            f"{field_name} must be a decimal value",
            details={field_name: repr(value)},
        ) from None
    if not amount.is_finite() or amount < 0:
        raise ValidationError(
            f"{field_name} must be a non-negative number",
            details={field_name: str(value)},
        )
    return amount.quantize(CENT)


@dataclass
class ReconciliationReport:
    """Result of comparing a wallet balance against its ledger."""

    user_id: str
    balance: Decimal
    total_credits: Decimal
    total_debits: Decimal
    entries: int
    tampered_entries: list[str] = field(default_factory=list)

    @property
    def ledger_balance(self) -> Decimal:
        return self.total_credits - self.total_debits

    @property
    def drift(self) -> Decimal:
        return self.balance - self.ledger_balance

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0 and not self.tampered_entries

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "balance": str(self.balance),
            "ledger_balance": str(self.ledger_balance),
            "drift": str(self.drift),
            "entries": self.entries,
            "tampered_entries": self.tampered_entries,
            "is_consistent": self.is_consistent,
        }


class WalletService:
    """Wallet primitives bound to one open transaction."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize wallet service."""
        self.session = session

    async def lock_user(self, user_id: str) -> User:
        """Load a user row for update.

        Raises:
            NotFoundError: Unknown user
        """
        user = await self.session.scalar(
            select(User).where(User.id == user_id).with_for_update()
        )
        if user is None:
            raise NotFoundError("user", user_id)
        return user

    async def get_balance(self, user_id: str) -> Decimal:
        """Get user's wallet balance.

        Raises:
            NotFoundError: Unknown user
        """
        user = await self.session.get(User, user_id)
        if not user:
            raise NotFoundError("user", user_id)
        return user.wallet_balance

    async def transfer(
        self,
        user_id: str,
        amount: Decimal,
        tx_type: TransactionType,
        *,
        description: str,
        tournament_id: str | None = None,
        user: User | None = None,
    ) -> WalletTransaction:
        """Apply one credit or debit and record it.

        Args:
            user_id: User ID
            amount: Positive amount; direction comes from tx_type
            tx_type: credit or debit
            description: Human-readable ledger description
            tournament_id: Source tournament, if any
            user: Already locked user row, to skip a second lock

        Returns:
            WalletTransaction record

        Raises:
            ValidationError: Amount not positive
            InsufficientBalanceError: Debit exceeds balance
            NotFoundError: Unknown user
        """
        amount = to_money(amount)
        if amount == 0:
            raise ValidationError("Amount cannot be zero", details={"userId": user_id})

        if user is None:
            user = await self.lock_user(user_id)

        balance_before = user.wallet_balance
        if tx_type is TransactionType.DEBIT:
            if balance_before < amount:
                raise InsufficientBalanceError(balance_before, amount)
            balance_after = balance_before - amount
        else:
            balance_after = balance_before + amount

        user.wallet_balance = balance_after

        tx = WalletTransaction(
            user_id=user_id,
            tx_type=tx_type,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            tournament_id=tournament_id,
            integrity_hash=self._compute_integrity_hash(
                user_id=user_id,
                tx_type=tx_type,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
            ),
        )
        self.session.add(tx)
        await self.session.flush()

        logger.info(
            "wallet_transfer",
            user_id=user_id,
            tx_type=tx_type.value,
            amount=str(amount),
            balance_before=str(balance_before),
            balance_after=str(balance_after),
        )

        return tx

    async def credit(
        self,
        user_id: str,
        amount: Decimal,
        *,
        description: str,
        tournament_id: str | None = None,
        user: User | None = None,
    ) -> WalletTransaction:
        return await self.transfer(
            user_id,
            amount,
            TransactionType.CREDIT,
            description=description,
            tournament_id=tournament_id,
            user=user,
        )

    async def debit(
        self,
        user_id: str,
        amount: Decimal,
        *,
        description: str,
        tournament_id: str | None = None,
        user: User | None = None,
    ) -> WalletTransaction:
        return await self.transfer(
            user_id,
            amount,
            TransactionType.DEBIT,
            description=description,
            tournament_id=tournament_id,
            user=user,
        )

    async def get_transactions(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        tx_type: TransactionType | None = None,
    ) -> list[WalletTransaction]:
        """Get user's transaction history, newest first."""
        query = select(WalletTransaction).where(WalletTransaction.user_id == user_id)

        if tx_type:
            query = query.where(WalletTransaction.tx_type == tx_type)

        query = (
            query.order_by(WalletTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def reconcile(self, user_id: str) -> ReconciliationReport:
        """Compare a user's balance with the sum of their ledger.

        Raises:
            NotFoundError: Unknown user
        """
        balance = await self.get_balance(user_id)

        entries = await self.session.execute(
            select(WalletTransaction).where(WalletTransaction.user_id == user_id)
        )
        rows = list(entries.scalars().all())

        report = ReconciliationReport(
            user_id=user_id,
            balance=balance,
            total_credits=sum(
                (tx.amount for tx in rows if tx.tx_type is TransactionType.CREDIT), ZERO
            ),
            total_debits=sum(
                (tx.amount for tx in rows if tx.tx_type is TransactionType.DEBIT), ZERO
            ),
            entries=len(rows),
            tampered_entries=[tx.id for tx in rows if not self.verify_integrity(tx)],
        )
        if not report.is_consistent:
            logger.warning("wallet_reconciliation_mismatch", **report.to_dict())
        return report

    @staticmethod
    def _compute_integrity_hash(
        user_id: str,
        tx_type: TransactionType,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
    ) -> str:
        """Compute SHA-256 integrity hash for a ledger entry."""
        data = (
            f"{user_id}:{tx_type.value}:{amount:.2f}:"
            f"{balance_before:.2f}:{balance_after:.2f}"
        )
        return hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def verify_integrity(tx: WalletTransaction) -> bool:
        """Verify transaction integrity hash."""
        expected = WalletService._compute_integrity_hash(
            user_id=tx.user_id,
            tx_type=tx.tx_type,
            amount=tx.amount,
            balance_before=tx.balance_before,
            balance_after=tx.balance_after,
        )
        return tx.integrity_hash == expected
