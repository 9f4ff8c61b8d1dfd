"""Offer endpoints: brands send offers, creators accept or reject them."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.schemas import (
    ContractResponse,
    OfferCreate,
    OfferDetailResponse,
    OfferReject,
    OfferResponse,
)
from marketplace.core.config import settings
from marketplace.core.deps import get_db
from marketplace.core.idempotency import idempotent
from marketplace.core.rate_limit import limiter
from marketplace.core.rbac import require_brand, require_creator
from marketplace.core.security import get_current_user
from marketplace.models.offer import Offer
from marketplace.models.user import User
from marketplace.services import offer as offer_svc
from marketplace.services.offer_state_machine import is_expired

router = APIRouter(prefix="/offers", tags=["offers"])


def _detail(offer: Offer, user: User) -> OfferDetailResponse:
    resp = OfferDetailResponse.model_validate(offer)
    resp.is_expired = offer.status == "pending" and is_expired(offer.expires_at)
    resp.available_actions = offer_svc.offer_actions(offer, user)
    return resp


@router.post("", response_model=OfferDetailResponse, status_code=201)
async def create_offer(
    body: OfferCreate,
    user: User = Depends(require_brand),
    db: AsyncSession = Depends(get_db),
):
    offer = await offer_svc.create_offer(db, user, body)
    return _detail(offer, user)


@router.get("", response_model=list[OfferResponse])
async def list_offers(
    status: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await offer_svc.list_offers(db, user, status=status, offset=offset, limit=limit)


@router.get("/{offer_id}", response_model=OfferDetailResponse)
async def get_offer(
    offer_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    offer = await offer_svc.get_offer(db, offer_id, user)
    return _detail(offer, user)


@router.post("/{offer_id}/accept", response_model=ContractResponse, status_code=201)
@limiter.limit(settings.rate_limit_money)
async def accept_offer(
    request: Request,
    offer_id: int,
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    """Accept the offer; the contract is created and the brand is charged."""
    async with idempotent(f"offer:accept:{offer_id}:{user.id}", ttl=30):
        return await offer_svc.accept_offer(db, offer_id, user)


@router.post("/{offer_id}/reject", response_model=OfferDetailResponse)
async def reject_offer(
    offer_id: int,
    body: OfferReject | None = None,
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    offer = await offer_svc.reject_offer(db, offer_id, user, body.reason if body else None)
    return _detail(offer, user)


@router.post("/{offer_id}/cancel", response_model=OfferDetailResponse)
async def cancel_offer(
    offer_id: int,
    user: User = Depends(require_brand),
    db: AsyncSession = Depends(get_db),
):
    offer = await offer_svc.cancel_offer(db, offer_id, user)
    return _detail(offer, user)
