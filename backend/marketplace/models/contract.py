from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.db.base import Base, utcnow


class Contract(Base):
    __tablename__ = "contracts"

    offer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("offers.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    brand_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    creator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    estimated_days: Mapped[int] = mapped_column(Integer, nullable=False)
    requirements: Mapped[list | None] = mapped_column(JSON, nullable=True)
    platform_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    creator_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default="pending", server_default="pending", index=True
    )
    workflow_status: Mapped[str] = mapped_column(
        String(30), default="payment_pending", server_default="payment_pending", index=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expected_completion_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispute_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    has_brand_review: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )
    has_creator_review: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default="false"
    )

    __table_args__ = (
        CheckConstraint("platform_fee + creator_amount = budget", name="ck_contracts_fee_split"),
        CheckConstraint("platform_fee >= 0 AND creator_amount >= 0", name="ck_contracts_fee_nonneg"),
    )

    @property
    def has_both_reviews(self) -> bool:
        return bool(self.has_brand_review and self.has_creator_review)

    @property
    def is_overdue(self) -> bool:
        return (
            self.status == "active"
            and self.expected_completion_at is not None
            and self.expected_completion_at < utcnow()
        )

    @property
    def days_until_completion(self) -> int:
        if self.expected_completion_at is None:
            return 0
        return max(0, (self.expected_completion_at - utcnow()).days)

    @property
    def progress_percentage(self) -> int:
        if not self.started_at or not self.expected_completion_at:
            return 0
        total = (self.expected_completion_at - self.started_at).total_seconds()
        if total <= 0:
            return 100
        elapsed = (utcnow() - self.started_at).total_seconds()
        return min(100, max(0, round(elapsed / total * 100)))
