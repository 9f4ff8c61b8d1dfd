"""Offer operations: create, accept (spawns the contract), reject, cancel, expire."""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.schemas import OfferCreate
from marketplace.core.config import settings
from marketplace.core.errors import (
    ConcurrencyError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from marketplace.db.base import utcnow
from marketplace.models.contract import Contract
from marketplace.models.offer import Offer
from marketplace.models.user import User
from marketplace.services.audit import record_audit
from marketplace.services.authorization import (
    ensure_brand_of,
    ensure_creator_of,
    ensure_party,
    ensure_role,
)
from marketplace.services.contract_state_machine import ContractStatus, WorkflowStatus
from marketplace.services.events import publish_event
from marketplace.services.fees import accept_split, to_money
from marketplace.services.gateway.base import PaymentGateway
from marketplace.services.offer_state_machine import (
    OfferAction,
    OfferActor,
    OfferStatus,
    get_available_actions,
    is_expired,
    validate_transition,
)
from marketplace.services.payment import charge_contract, new_payment_record
from marketplace.services.user import get_user_by_id

logger = logging.getLogger(__name__)


def _validate_terms(budget, estimated_days: int, expires_at: datetime | None) -> None:
    budget = to_money(budget)
    if not settings.offer_min_budget <= budget <= settings.offer_max_budget:
        raise ValidationError(
            f"Budget must be between {settings.offer_min_budget} and {settings.offer_max_budget}",
            code="invalid_budget",
        )
    if not 1 <= estimated_days <= settings.offer_max_days:
        raise ValidationError(
            f"Estimated days must be between 1 and {settings.offer_max_days}",
            code="invalid_estimated_days",
        )
    if expires_at is not None and is_expired(expires_at):
        raise ValidationError("Expiry must be in the future", code="invalid_expiry")


async def create_offer(db: AsyncSession, brand: User, data: OfferCreate) -> Offer:
    ensure_role(brand, "brand")
    _validate_terms(data.budget, data.estimated_days, data.expires_at)

    # The creator row lock serializes concurrent offers to the same creator,
    # so two requests cannot both pass the pending-offer check below
    creator = await get_user_by_id(db, data.creator_id, lock=True)
    if not creator or not creator.is_creator:
        raise NotFoundError("Creator not found", code="invalid_creator")

    now = utcnow()
    result = await db.execute(
        select(Offer.id).where(
            Offer.brand_id == brand.id,
            Offer.creator_id == creator.id,
            Offer.status == OfferStatus.PENDING,
            Offer.expires_at > now,
        )
    )
    if result.scalar_one_or_none() is not None:
        raise PreconditionError(
            "You already have a pending offer for this creator", code="offer_already_pending"
        )

    offer = Offer(
        brand_id=brand.id,
        creator_id=creator.id,
        title=data.title,
        description=data.description,
        budget=to_money(data.budget),
        estimated_days=data.estimated_days,
        requirements=data.requirements,
        status=OfferStatus.PENDING,
        expires_at=data.expires_at or now + timedelta(hours=settings.offer_ttl_hours),
    )
    db.add(offer)
    await db.commit()
    await db.refresh(offer)

    logger.info(
        "Offer created",
        extra={"offer_id": offer.id, "brand_id": brand.id, "creator_id": creator.id},
    )
    await publish_event(
        "offer.created", "offer", offer.id,
        brand_id=brand.id, creator_id=creator.id, budget=offer.budget,
    )
    return offer


async def _load_offer(db: AsyncSession, offer_id: int, *, lock: bool = False) -> Offer:
    stmt = select(Offer).where(Offer.id == offer_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    offer = result.scalar_one_or_none()
    if not offer:
        raise NotFoundError("Offer not found")
    return offer


def _ensure_actionable(offer: Offer) -> None:
    """Map a stale offer to a precise precondition error before the state machine."""
    if offer.status != OfferStatus.PENDING:
        raise PreconditionError(
            f"Offer was already {offer.status}", code="offer_already_processed"
        )
    if is_expired(offer.expires_at):
        raise PreconditionError("Offer has expired", code="offer_expired")


async def get_offer(db: AsyncSession, offer_id: int, user: User) -> Offer:
    offer = await _load_offer(db, offer_id)
    ensure_party(offer, user, allow_admin=True)
    return offer


def offer_actions(offer: Offer, user: User) -> list[str]:
    if offer.brand_id == user.id:
        actor = OfferActor.BRAND
    elif offer.creator_id == user.id:
        actor = OfferActor.CREATOR
    else:
        return []
    return get_available_actions(offer.status, actor, offer.expires_at)


async def list_offers(
    db: AsyncSession,
    user: User,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Offer]:
    """Offers sent by a brand or received by a creator (admins see all).

    ``status="expired"`` also matches pending offers whose expiry has passed
    but that the sweep has not persisted yet; ``status="pending"`` excludes
    them.
    """
    stmt = select(Offer)
    if user.is_brand:
        stmt = stmt.where(Offer.brand_id == user.id)
    elif user.is_creator:
        stmt = stmt.where(Offer.creator_id == user.id)
    elif not user.is_admin:
        return []

    now = utcnow()
    if status == OfferStatus.EXPIRED:
        stmt = stmt.where(
            or_(
                Offer.status == OfferStatus.EXPIRED,
                and_(Offer.status == OfferStatus.PENDING, Offer.expires_at <= now),
            )
        )
    elif status == OfferStatus.PENDING:
        stmt = stmt.where(Offer.status == OfferStatus.PENDING, Offer.expires_at > now)
    elif status:
        stmt = stmt.where(Offer.status == status)

    result = await db.execute(stmt.order_by(Offer.id.desc()).offset(offset).limit(limit))
    return list(result.scalars().all())


async def accept_offer(
    db: AsyncSession,
    offer_id: int,
    creator: User,
    gateway: PaymentGateway | None = None,
) -> Contract:
    """Creator accepts: offer -> accepted, contract created and charged.

    The offer row stays locked until the single commit, so two concurrent
    accepts serialize and the loser sees ``offer_already_processed``. A
    declined charge still yields a contract, in ``payment_failed``.
    """
    offer = await _load_offer(db, offer_id, lock=True)
    ensure_creator_of(offer, creator)
    _ensure_actionable(offer)
    new_status = validate_transition(
        offer.status, OfferAction.ACCEPT, OfferActor.CREATOR, offer.expires_at
    )

    platform_fee, creator_amount = accept_split(offer.budget)
    contract = Contract(
        offer_id=offer.id,
        brand_id=offer.brand_id,
        creator_id=offer.creator_id,
        title=offer.title,
        description=offer.description,
        budget=offer.budget,
        estimated_days=offer.estimated_days,
        requirements=offer.requirements,
        platform_fee=platform_fee,
        creator_amount=creator_amount,
        status=ContractStatus.PENDING,
        workflow_status=WorkflowStatus.PAYMENT_PENDING,
        has_brand_review=False,
        has_creator_review=False,
    )
    db.add(contract)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise ConcurrencyError("A contract already exists for this offer") from exc

    payment = new_payment_record(contract)
    db.add(payment)

    offer.status = new_status
    offer.accepted_at = utcnow()

    result = await charge_contract(db, contract, payment, gateway)

    record_audit(
        db, action="offer_accepted", entity_type="offer", entity_id=offer.id,
        user_id=creator.id, actor="creator",
        details={"contract_id": contract.id, "budget": offer.budget, "platform_fee": platform_fee},
    )
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConcurrencyError("Offer was accepted concurrently") from exc
    await db.refresh(contract)

    logger.info(
        "Offer accepted",
        extra={"offer_id": offer.id, "contract_id": contract.id, "charged": result.success},
    )
    await publish_event("offer.accepted", "offer", offer.id, contract_id=contract.id)
    if result.success:
        await publish_event(
            "contract.activated", "contract", contract.id,
            transaction_id=result.transaction_ref,
        )
    else:
        await publish_event(
            "contract.payment_failed", "contract", contract.id, reason=result.reason
        )
    return contract


async def reject_offer(
    db: AsyncSession, offer_id: int, creator: User, reason: str | None = None
) -> Offer:
    offer = await _load_offer(db, offer_id, lock=True)
    ensure_creator_of(offer, creator)
    _ensure_actionable(offer)
    offer.status = validate_transition(
        offer.status, OfferAction.REJECT, OfferActor.CREATOR, offer.expires_at
    )
    offer.rejected_at = utcnow()
    offer.rejection_reason = reason
    await db.commit()
    await db.refresh(offer)
    await publish_event("offer.rejected", "offer", offer.id, reason=reason)
    return offer


async def cancel_offer(db: AsyncSession, offer_id: int, brand: User) -> Offer:
    offer = await _load_offer(db, offer_id, lock=True)
    ensure_brand_of(offer, brand)
    _ensure_actionable(offer)
    offer.status = validate_transition(
        offer.status, OfferAction.CANCEL, OfferActor.BRAND, offer.expires_at
    )
    offer.cancelled_at = utcnow()
    await db.commit()
    await db.refresh(offer)
    await publish_event("offer.cancelled", "offer", offer.id)
    return offer


async def expire_stale_offers(db: AsyncSession, now: datetime | None = None) -> int:
    """Persist ``expired`` on every pending offer past its expiry. Returns the count.

    Rows locked by an in-flight accept are skipped; the next sweep gets them
    if the accept did not.
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(Offer)
        .where(Offer.status == OfferStatus.PENDING, Offer.expires_at <= now)
        .with_for_update(skip_locked=True)
    )
    offers = list(result.scalars().all())
    for offer in offers:
        offer.status = validate_transition(
            offer.status, OfferAction.EXPIRE, OfferActor.SYSTEM, offer.expires_at, now
        )
    await db.commit()

    for offer in offers:
        await publish_event("offer.expired", "offer", offer.id)
    if offers:
        logger.info("Expired stale offers", extra={"count": len(offers)})
    return len(offers)
