"""Creator balance and withdrawal endpoints."""

from typing import Literal

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.schemas import (
    BalanceHistoryEntry,
    BalanceResponse,
    WithdrawalCancel,
    WithdrawalCreate,
    WithdrawalMethodResponse,
    WithdrawalResponse,
    WithdrawalStatsResponse,
)
from marketplace.core.config import settings
from marketplace.core.deps import get_db
from marketplace.core.idempotency import idempotent
from marketplace.core.rate_limit import limiter
from marketplace.core.rbac import require_creator
from marketplace.models.user import User
from marketplace.services import ledger
from marketplace.services import withdrawal as withdrawal_svc

router = APIRouter(tags=["withdrawals"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    return await ledger.get_balance_summary(db, user.id)


@router.get("/balance/history", response_model=list[BalanceHistoryEntry])
async def get_balance_history(
    days: int | None = Query(default=30, ge=1, le=365),
    entry_type: Literal["earning", "withdrawal"] | None = Query(default=None, alias="type"),
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    """Earnings and withdrawals of the last ``days`` days with the running balance."""
    return await ledger.get_balance_history(db, user.id, days=days, entry_type=entry_type)


@router.post("/withdrawals", response_model=WithdrawalResponse, status_code=201)
@limiter.limit(settings.rate_limit_money)
async def create_withdrawal(
    request: Request,
    body: WithdrawalCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    """Request a payout; the amount is held on the balance immediately.

    Clients that may resend the request pass an ``Idempotency-Key`` header;
    without one every call is a new withdrawal.
    """
    if not idempotency_key:
        return await withdrawal_svc.create_withdrawal(db, user, body)
    async with idempotent(
        f"withdrawal:create:{user.id}:{idempotency_key}", ttl=settings.idempotency_key_ttl_seconds
    ):
        return await withdrawal_svc.create_withdrawal(db, user, body)


@router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def list_withdrawals(
    status: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    return await withdrawal_svc.list_withdrawals(
        db, user, status=status, offset=offset, limit=limit
    )


@router.get("/withdrawals/methods", response_model=list[WithdrawalMethodResponse])
async def withdrawal_methods(user: User = Depends(require_creator)):
    return withdrawal_svc.withdrawal_methods()


@router.get("/withdrawals/statistics", response_model=WithdrawalStatsResponse)
async def withdrawal_statistics(
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    return await withdrawal_svc.withdrawal_statistics(db, user.id)


@router.get("/withdrawals/{withdrawal_id}", response_model=WithdrawalResponse)
async def get_withdrawal(
    withdrawal_id: int,
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    return await withdrawal_svc.get_withdrawal(db, withdrawal_id, user)


@router.post("/withdrawals/{withdrawal_id}/cancel", response_model=WithdrawalResponse)
async def cancel_withdrawal(
    withdrawal_id: int,
    body: WithdrawalCancel | None = None,
    user: User = Depends(require_creator),
    db: AsyncSession = Depends(get_db),
):
    return await withdrawal_svc.cancel_withdrawal(
        db, withdrawal_id, user, body.reason if body else None
    )
