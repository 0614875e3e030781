"""Wallet ledger model.

Every balance change is recorded here with the balance before and after
and an integrity hash for tamper detection. Rows are append-only.
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum as SQLEnum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tourney.models.base import Base, Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from tourney.models.user import User


class TransactionType(str, Enum):
    """Direction of a wallet movement."""

    CREDIT = "credit"
    DEBIT = "debit"


class WalletTransaction(Base, UUIDMixin, TimestampMixin):
    """Ledger entry for one wallet mutation."""

    __tablename__ = "transactions"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    tx_type: Mapped[TransactionType] = mapped_column(
        SQLEnum(TransactionType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
        comment="Always positive; direction is tx_type",
    )
    balance_before: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Money, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Source tournament for entry fees and prizes
    tournament_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    integrity_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 hash for tamper detection",
    )

    user: Mapped["User"] = relationship("User", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
    )

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.tx_type is TransactionType.CREDIT else -self.amount

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction {self.id[:8]}... "
            f"type={self.tx_type.value} amount={self.amount}>"
        )
