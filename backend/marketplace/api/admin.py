"""Admin operations: payout and dispute queues, manual payout processing and dispute resolution."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.contracts import contract_detail
from marketplace.api.schemas import (
    ContractDetailResponse,
    ContractResponse,
    DisputeResolution,
    WithdrawalResponse,
)
from marketplace.core.deps import get_db
from marketplace.core.rbac import require_admin
from marketplace.models.user import User
from marketplace.services import contract as contract_svc
from marketplace.services import withdrawal as withdrawal_svc
from marketplace.services.withdrawal_state_machine import WithdrawalStatus

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def list_withdrawals(
    status: WithdrawalStatus | None = Query(default=WithdrawalStatus.PENDING),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await withdrawal_svc.list_all_withdrawals(
        db, status=status, offset=offset, limit=limit
    )


@router.post("/withdrawals/{withdrawal_id}/process", response_model=WithdrawalResponse)
async def process_withdrawal(
    withdrawal_id: int,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await withdrawal_svc.process_withdrawal(db, withdrawal_id)


@router.get("/contracts/disputed", response_model=list[ContractResponse])
async def list_disputed_contracts(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await contract_svc.list_disputed_contracts(db, offset=offset, limit=limit)


@router.post("/contracts/{contract_id}/resolve", response_model=ContractDetailResponse)
async def resolve_dispute(
    contract_id: int,
    body: DisputeResolution,
    user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    contract = await contract_svc.resolve_dispute(
        db, contract_id, user, body.resolution, body.note
    )
    return await contract_detail(db, contract, user)
