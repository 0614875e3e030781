"""User account and wallet model."""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tourney.models.base import ZERO, Base, Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from tourney.models.wallet import WalletTransaction


class User(Base, UUIDMixin, TimestampMixin):
    """User account model."""

    __tablename__ = "users"

    # Profile
    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Wallet balance, mutated only through WalletService
    wallet_balance: Mapped[Decimal] = mapped_column(
        Money,
        default=ZERO,
        nullable=False,
    )

    is_admin: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    transactions: Mapped[list["WalletTransaction"]] = relationship(
        "WalletTransaction",
        back_populates="user",
        order_by="desc(WalletTransaction.created_at)",
    )

    __table_args__ = (
        CheckConstraint("wallet_balance >= 0", name="ck_users_wallet_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<User {self.username}>"
