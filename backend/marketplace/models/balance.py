from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.db.base import Base

_ZERO = Decimal("0.00")


class CreatorBalance(Base):
    __tablename__ = "creator_balances"

    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    available_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=_ZERO, server_default="0", nullable=False
    )
    pending_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=_ZERO, server_default="0", nullable=False
    )
    # Reserved by withdrawals that are pending or processing
    held_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=_ZERO, server_default="0", nullable=False
    )
    total_earned: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=_ZERO, server_default="0", nullable=False
    )
    total_withdrawn: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=_ZERO, server_default="0", nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "available_balance >= 0 AND pending_balance >= 0 AND held_balance >= 0 "
            "AND total_earned >= 0 AND total_withdrawn >= 0",
            name="ck_creator_balances_nonneg",
        ),
    )

    @property
    def total_balance(self) -> Decimal:
        return self.available_balance + self.pending_balance
