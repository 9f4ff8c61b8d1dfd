from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.db.base import Base


class PaymentRecord(Base):
    """Single payment row per contract.

    ``stage`` tracks which leg the money is on (authorized -> captured ->
    released); ``status`` is the status of that leg.
    """

    __tablename__ = "contract_payments"

    contract_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("contracts.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    brand_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    creator_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    payment_method: Mapped[str] = mapped_column(
        String(50), default="credit_card", server_default="credit_card"
    )
    stage: Mapped[str] = mapped_column(
        String(20), default="authorized", server_default="authorized"
    )  # authorized / captured / released
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", index=True
    )  # pending / completed / failed
    transaction_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "platform_fee + creator_amount = total_amount", name="ck_contract_payments_split"
        ),
    )
