"""initial marketplace schema: users, offers, contracts, payments, reviews, balances, withdrawals

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def _user_fk(name: str, ondelete: str = "CASCADE", nullable: bool = False) -> sa.Column:
    return sa.Column(
        name, sa.Integer(), sa.ForeignKey("users.id", ondelete=ondelete), nullable=nullable
    )


def _money(name: str, **kw) -> sa.Column:
    return sa.Column(name, sa.Numeric(12, 2), nullable=False, **kw)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), server_default="creator", nullable=False),
        sa.Column("average_rating", sa.Numeric(2, 1), server_default="0", nullable=False),
        sa.Column("total_reviews", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "offers",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _user_fk("brand_id"),
        _user_fk("creator_id"),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _money("budget"),
        sa.Column("estimated_days", sa.Integer(), nullable=False),
        sa.Column("requirements", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("budget > 0", name="ck_offers_budget_positive"),
        sa.CheckConstraint("estimated_days > 0", name="ck_offers_days_positive"),
    )
    op.create_index("ix_offers_brand_id", "offers", ["brand_id"])
    op.create_index("ix_offers_creator_id", "offers", ["creator_id"])
    op.create_index("ix_offers_status", "offers", ["status"])
    op.create_index(
        "ix_offers_brand_creator_pending",
        "offers",
        ["brand_id", "creator_id"],
        postgresql_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "offer_id",
            sa.Integer(),
            sa.ForeignKey("offers.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        _user_fk("brand_id"),
        _user_fk("creator_id"),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _money("budget"),
        sa.Column("estimated_days", sa.Integer(), nullable=False),
        sa.Column("requirements", sa.JSON(), nullable=True),
        _money("platform_fee"),
        _money("creator_amount"),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column(
            "workflow_status", sa.String(30), server_default="payment_pending", nullable=False
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expected_completion_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("dispute_reason", sa.Text(), nullable=True),
        sa.Column("has_brand_review", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("has_creator_review", sa.Boolean(), server_default="false", nullable=False),
        *_timestamps(),
        sa.CheckConstraint("platform_fee + creator_amount = budget", name="ck_contracts_fee_split"),
        sa.CheckConstraint(
            "platform_fee >= 0 AND creator_amount >= 0", name="ck_contracts_fee_nonneg"
        ),
    )
    op.create_index("ix_contracts_brand_id", "contracts", ["brand_id"])
    op.create_index("ix_contracts_creator_id", "contracts", ["creator_id"])
    op.create_index("ix_contracts_status", "contracts", ["status"])
    op.create_index("ix_contracts_workflow_status", "contracts", ["workflow_status"])

    op.create_table(
        "contract_payments",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        _user_fk("brand_id"),
        _user_fk("creator_id"),
        _money("total_amount"),
        _money("platform_fee"),
        _money("creator_amount"),
        sa.Column("payment_method", sa.String(50), server_default="credit_card", nullable=False),
        sa.Column("stage", sa.String(20), server_default="authorized", nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "platform_fee + creator_amount = total_amount", name="ck_contract_payments_split"
        ),
    )
    op.create_index("ix_contract_payments_brand_id", "contract_payments", ["brand_id"])
    op.create_index("ix_contract_payments_creator_id", "contract_payments", ["creator_id"])
    op.create_index("ix_contract_payments_status", "contract_payments", ["status"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "contract_id",
            sa.Integer(),
            sa.ForeignKey("contracts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _user_fk("reviewer_id"),
        _user_fk("reviewed_id"),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("rating_categories", sa.JSON(), nullable=True),
        sa.Column("is_public", sa.Boolean(), server_default="true", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("contract_id", "reviewer_id", name="uq_reviews_contract_reviewer"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
    )
    op.create_index("ix_reviews_contract_id", "reviews", ["contract_id"])
    op.create_index("ix_reviews_reviewed_id", "reviews", ["reviewed_id"])

    op.create_table(
        "creator_balances",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column(
            "creator_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        _money("available_balance", server_default="0"),
        _money("pending_balance", server_default="0"),
        _money("held_balance", server_default="0"),
        _money("total_earned", server_default="0"),
        _money("total_withdrawn", server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "available_balance >= 0 AND pending_balance >= 0 AND held_balance >= 0 "
            "AND total_earned >= 0 AND total_withdrawn >= 0",
            name="ck_creator_balances_nonneg",
        ),
    )

    op.create_table(
        "withdrawals",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _user_fk("creator_id"),
        _money("amount"),
        sa.Column("withdrawal_method", sa.String(30), nullable=False),
        sa.Column("withdrawal_details", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("transaction_id", sa.String(128), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_withdrawals_amount_positive"),
    )
    op.create_index("ix_withdrawals_creator_id", "withdrawals", ["creator_id"])
    op.create_index("ix_withdrawals_status", "withdrawals", ["status"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        _user_fk("user_id", ondelete="SET NULL", nullable=True),
        sa.Column("actor", sa.String(20), server_default="system", nullable=False),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("withdrawals")
    op.drop_table("creator_balances")
    op.drop_table("reviews")
    op.drop_table("contract_payments")
    op.drop_table("contracts")
    op.drop_table("offers")
    op.drop_table("users")
