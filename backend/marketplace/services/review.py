"""Contract reviews.

A review is the gate of the escrow release: the creator's review on a
``waiting_review`` contract releases the payment in the same transaction.
A brand review never moves money.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.schemas import ReviewCreate
from marketplace.core.errors import PreconditionError
from marketplace.models.review import Review
from marketplace.models.user import User
from marketplace.services.audit import record_audit
from marketplace.services.authorization import ensure_party
from marketplace.services.contract import get_contract, load_contract
from marketplace.services.contract_state_machine import (
    REVIEWABLE_WORKFLOWS,
    ContractStatus,
    WorkflowStatus,
)
from marketplace.services.events import publish_event
from marketplace.services.payment import release_after_review
from marketplace.services.user import get_user_by_id

logger = logging.getLogger(__name__)


async def _recompute_rating(db: AsyncSession, user_id: int) -> None:
    """Refresh the reviewed user's public rating aggregate."""
    result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(
            Review.reviewed_id == user_id, Review.is_public == True  # noqa: E712
        )
    )
    avg_rating, count = result.one()
    user = await get_user_by_id(db, user_id, lock=True)
    if user is None:
        return
    user.average_rating = Decimal(str(avg_rating or 0)).quantize(
        Decimal("0.1"), rounding=ROUND_HALF_UP
    )
    user.total_reviews = count or 0


async def submit_review(
    db: AsyncSession, contract_id: int, reviewer: User, data: ReviewCreate
) -> Review:
    contract = await load_contract(db, contract_id, lock=True)
    role = ensure_party(contract, reviewer)

    if (
        contract.status != ContractStatus.COMPLETED
        or contract.workflow_status not in REVIEWABLE_WORKFLOWS
    ):
        raise PreconditionError(
            "Only completed contracts can be reviewed", code="contract_not_reviewable"
        )

    already = contract.has_brand_review if role == "brand" else contract.has_creator_review
    if already:
        raise PreconditionError("You already reviewed this contract", code="duplicate_review")

    review = Review(
        contract_id=contract.id,
        reviewer_id=reviewer.id,
        reviewed_id=contract.creator_id if role == "brand" else contract.brand_id,
        rating=data.rating,
        comment=data.comment,
        rating_categories=data.rating_categories,
        is_public=data.is_public,
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise PreconditionError(
            "You already reviewed this contract", code="duplicate_review"
        ) from exc

    if role == "brand":
        contract.has_brand_review = True
    else:
        contract.has_creator_review = True

    released = False
    if role == "creator" and contract.workflow_status == WorkflowStatus.WAITING_REVIEW:
        await release_after_review(db, contract)
        released = True

    await _recompute_rating(db, review.reviewed_id)
    record_audit(
        db, action="review_created", entity_type="contract", entity_id=contract.id,
        user_id=reviewer.id, actor=role, details={"rating": data.rating, "released": released},
    )
    await db.commit()
    await db.refresh(review)

    logger.info(
        "Review submitted",
        extra={"contract_id": contract.id, "reviewer_id": reviewer.id, "released": released},
    )
    await publish_event(
        "review.created", "review", review.id,
        contract_id=contract.id, reviewer_id=reviewer.id, rating=review.rating,
    )
    if released:
        await publish_event(
            "contract.payment_available", "contract", contract.id,
            creator_id=contract.creator_id, creator_amount=contract.creator_amount,
        )
    return review


async def list_user_reviews(
    db: AsyncSession, user_id: int, offset: int = 0, limit: int = 50
) -> list[Review]:
    """Public reviews a user has received."""
    result = await db.execute(
        select(Review)
        .where(Review.reviewed_id == user_id, Review.is_public == True)  # noqa: E712
        .order_by(Review.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def list_contract_reviews(db: AsyncSession, contract_id: int, user: User) -> list[Review]:
    await get_contract(db, contract_id, user)
    result = await db.execute(
        select(Review).where(Review.contract_id == contract_id).order_by(Review.id)
    )
    return list(result.scalars().all())
