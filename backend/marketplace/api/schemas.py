from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    success: bool = False
    code: str
    detail: str


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None
    role: Literal["brand", "creator", "admin"]
    average_rating: Decimal
    total_reviews: int

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------


class OfferCreate(BaseModel):
    creator_id: int
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    budget: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    estimated_days: int = Field(..., ge=1)
    requirements: list[str] | None = None
    expires_at: datetime | None = None


class OfferReject(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class OfferResponse(BaseModel):
    id: int
    brand_id: int
    creator_id: int
    title: str | None
    description: str | None
    budget: Decimal
    estimated_days: int
    requirements: list[str] | None
    status: str
    expires_at: datetime
    accepted_at: datetime | None
    rejected_at: datetime | None
    rejection_reason: str | None
    cancelled_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class OfferDetailResponse(OfferResponse):
    is_expired: bool = False
    available_actions: list[str] = []


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


class ContractResponse(BaseModel):
    id: int
    offer_id: int
    brand_id: int
    creator_id: int
    title: str | None
    description: str | None
    budget: Decimal
    estimated_days: int
    requirements: list[str] | None
    platform_fee: Decimal
    creator_amount: Decimal
    status: str
    workflow_status: str
    started_at: datetime | None
    expected_completion_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    dispute_reason: str | None
    has_brand_review: bool
    has_creator_review: bool
    has_both_reviews: bool
    is_overdue: bool
    days_until_completion: int
    progress_percentage: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ContractDetailResponse(ContractResponse):
    available_actions: list[str] = []
    payment: "PaymentResponse | None" = None


class ContractReason(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class ContractDispute(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class DisputeResolution(BaseModel):
    resolution: Literal["complete", "cancel"]
    note: str | None = Field(default=None, max_length=2000)


class PaymentResponse(BaseModel):
    id: int
    contract_id: int
    total_amount: Decimal
    platform_fee: Decimal
    creator_amount: Decimal
    payment_method: str
    stage: str
    status: str
    transaction_id: str | None
    failure_reason: str | None
    processed_at: datetime | None

    model_config = {"from_attributes": True}


ContractDetailResponse.model_rebuild()


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: str | None = Field(default=None, max_length=1000)
    rating_categories: dict[str, int] | None = None
    is_public: bool = True

    @field_validator("rating_categories")
    @classmethod
    def _categories_in_range(cls, v: dict[str, int] | None) -> dict[str, int] | None:
        if v:
            for name, score in v.items():
                if not 1 <= score <= 5:
                    raise ValueError(f"Category '{name}' must be rated between 1 and 5")
        return v


class ReviewResponse(BaseModel):
    id: int
    contract_id: int
    reviewer_id: int
    reviewed_id: int
    rating: int
    comment: str | None
    rating_categories: dict[str, int] | None
    average_rating: float
    is_public: bool
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Balance & withdrawals
# ---------------------------------------------------------------------------


class BalanceResponse(BaseModel):
    creator_id: int
    available_balance: Decimal
    pending_balance: Decimal
    held_balance: Decimal
    total_balance: Decimal
    total_earned: Decimal
    total_withdrawn: Decimal
    earnings_this_month: Decimal
    earnings_this_year: Decimal
    pending_withdrawals_count: int
    pending_withdrawals_amount: Decimal


class WithdrawalCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    withdrawal_method: Literal["bank_transfer", "pagarme_account", "pix"]
    withdrawal_details: dict[str, str] = Field(default_factory=dict)


class WithdrawalCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class WithdrawalResponse(BaseModel):
    id: int
    creator_id: int
    amount: Decimal
    withdrawal_method: str
    withdrawal_details: dict
    status: str
    transaction_id: str | None
    processed_at: datetime | None
    failure_reason: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class WithdrawalStatsResponse(BaseModel):
    total_withdrawals: int
    by_status: dict[str, int]
    amount_by_status: dict[str, Decimal]
    completed_this_month: Decimal
    completed_this_year: Decimal


class BalanceHistoryEntry(BaseModel):
    type: Literal["earning", "withdrawal"]
    id: int
    amount: Decimal
    running_balance: Decimal
    description: str
    status: str
    date: datetime


class WithdrawalMethodResponse(BaseModel):
    id: str
    name: str
    min_amount: Decimal
    max_amount: Decimal
    required_details: list[str]


# ---------------------------------------------------------------------------
# Public config
# ---------------------------------------------------------------------------


class PublicConfigResponse(BaseModel):
    """Money and percentages serialize as decimal strings, like every amount in the API."""

    accept_fee_percent: Decimal
    release_fee_percent: Decimal
    offer_ttl_hours: int
    offer_min_budget: Decimal
    offer_max_budget: Decimal
    max_pending_withdrawals: int
    withdrawal_max_amount: Decimal
    withdrawal_min_amounts: dict[str, Decimal]
    gateway_mode: str
