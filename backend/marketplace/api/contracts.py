"""Contract endpoints, including contract reviews."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.schemas import (
    ContractDetailResponse,
    ContractDispute,
    ContractReason,
    ContractResponse,
    PaymentResponse,
    ReviewCreate,
    ReviewResponse,
)
from marketplace.core.config import settings
from marketplace.core.deps import get_db
from marketplace.core.rate_limit import limiter
from marketplace.core.rbac import require_brand
from marketplace.core.security import get_current_user
from marketplace.models.contract import Contract
from marketplace.models.user import User
from marketplace.services import contract as contract_svc
from marketplace.services import review as review_svc
from marketplace.services.payment import get_payment_for_contract

router = APIRouter(prefix="/contracts", tags=["contracts"])


async def contract_detail(db: AsyncSession, contract: Contract, user: User) -> ContractDetailResponse:
    resp = ContractDetailResponse.model_validate(contract)
    resp.available_actions = contract_svc.contract_actions(contract, user)
    payment = await get_payment_for_contract(db, contract.id)
    if payment is not None:
        resp.payment = PaymentResponse.model_validate(payment)
    return resp


@router.get("", response_model=list[ContractResponse])
async def list_contracts(
    status: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await contract_svc.list_contracts(db, user, status=status, offset=offset, limit=limit)


@router.get("/{contract_id}", response_model=ContractDetailResponse)
async def get_contract(
    contract_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_svc.get_contract(db, contract_id, user)
    return await contract_detail(db, contract, user)


@router.post("/{contract_id}/complete", response_model=ContractDetailResponse)
@limiter.limit(settings.rate_limit_money)
async def complete_contract(
    request: Request,
    contract_id: int,
    user: User = Depends(require_brand),
    db: AsyncSession = Depends(get_db),
):
    """Brand confirms delivery; escrow waits for the creator's review."""
    contract = await contract_svc.complete_contract(db, contract_id, user)
    return await contract_detail(db, contract, user)


@router.post("/{contract_id}/cancel", response_model=ContractDetailResponse)
async def cancel_contract(
    contract_id: int,
    body: ContractReason | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_svc.cancel_contract(
        db, contract_id, user, body.reason if body else None
    )
    return await contract_detail(db, contract, user)


@router.post("/{contract_id}/dispute", response_model=ContractDetailResponse)
async def dispute_contract(
    contract_id: int,
    body: ContractDispute,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_svc.dispute_contract(db, contract_id, user, body.reason)
    return await contract_detail(db, contract, user)


@router.post("/{contract_id}/terminate", response_model=ContractDetailResponse)
async def terminate_contract(
    contract_id: int,
    body: ContractReason | None = None,
    user: User = Depends(require_brand),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_svc.terminate_contract(
        db, contract_id, user, body.reason if body else None
    )
    return await contract_detail(db, contract, user)


@router.post("/{contract_id}/retry-payment", response_model=ContractDetailResponse)
@limiter.limit(settings.rate_limit_money)
async def retry_payment(
    request: Request,
    contract_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_svc.retry_contract_payment(db, contract_id, user)
    return await contract_detail(db, contract, user)


@router.post("/{contract_id}/reviews", response_model=ReviewResponse, status_code=201)
async def submit_review(
    contract_id: int,
    body: ReviewCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Leave a review; the creator's review releases the escrow."""
    return await review_svc.submit_review(db, contract_id, user, body)


@router.get("/{contract_id}/reviews", response_model=list[ReviewResponse])
async def list_contract_reviews(
    contract_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await review_svc.list_contract_reviews(db, contract_id, user)
