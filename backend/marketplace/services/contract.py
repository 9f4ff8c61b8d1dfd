"""Contract lifecycle operations.

Each operation locks the contract row, validates the transition against the
state machine for the caller's role, applies it and commits once. Events are
published only after the commit.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import NotFoundError, PreconditionError, ValidationError
from marketplace.db.base import utcnow
from marketplace.models.contract import Contract
from marketplace.models.user import User
from marketplace.services.audit import record_audit
from marketplace.services.authorization import ensure_brand_of, ensure_party, ensure_role
from marketplace.services.contract_state_machine import (
    ContractAction,
    ContractActor,
    ContractStatus,
    WorkflowStatus,
    get_available_actions,
    validate_transition,
)
from marketplace.services.events import publish_event
from marketplace.services.fees import release_split
from marketplace.services.gateway.base import PaymentGateway
from marketplace.services.payment import (
    PaymentStatus,
    charge_contract,
    get_payment_for_contract,
    stage_release,
)

logger = logging.getLogger(__name__)

DEFAULT_TERMINATION_REASON = "Contract terminated by brand"


async def load_contract(db: AsyncSession, contract_id: int, *, lock: bool = False) -> Contract:
    stmt = select(Contract).where(Contract.id == contract_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    contract = result.scalar_one_or_none()
    if not contract:
        raise NotFoundError("Contract not found")
    return contract


async def get_contract(db: AsyncSession, contract_id: int, user: User) -> Contract:
    contract = await load_contract(db, contract_id)
    ensure_party(contract, user, allow_admin=True)
    return contract


def contract_actions(contract: Contract, user: User) -> list[str]:
    """Actions the user may take on the contract right now."""
    if contract.brand_id == user.id:
        actor = ContractActor.BRAND
    elif contract.creator_id == user.id:
        actor = ContractActor.CREATOR
    elif user.is_admin:
        actor = ContractActor.ADMIN
    else:
        return []
    return get_available_actions(contract.status, contract.workflow_status, actor)


async def list_contracts(
    db: AsyncSession,
    user: User,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Contract]:
    stmt = select(Contract)
    if not user.is_admin:
        stmt = stmt.where(or_(Contract.brand_id == user.id, Contract.creator_id == user.id))
    if status:
        stmt = stmt.where(Contract.status == status)
    result = await db.execute(stmt.order_by(Contract.id.desc()).offset(offset).limit(limit))
    return list(result.scalars().all())


async def list_disputed_contracts(
    db: AsyncSession, offset: int = 0, limit: int = 50
) -> list[Contract]:
    """Admin dispute queue, oldest first."""
    result = await db.execute(
        select(Contract)
        .where(Contract.status == ContractStatus.DISPUTED)
        .order_by(Contract.updated_at, Contract.id)
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def _apply_completion(db: AsyncSession, contract: Contract, action: str, actor: str) -> None:
    """Move an active (or resolved) contract to completed/waiting_review.

    Fees are re-split at the release percentage and the payment record is
    parked as ``released/pending`` until the creator's review.
    """
    new_status, new_workflow = validate_transition(
        contract.status, contract.workflow_status, action, actor
    )
    payment = await get_payment_for_contract(db, contract.id, lock=True)
    if payment is None or payment.status != PaymentStatus.COMPLETED:
        raise PreconditionError(
            "Contract has no captured payment to release", code="payment_not_captured"
        )

    contract.platform_fee, contract.creator_amount = release_split(contract.budget)
    contract.status, contract.workflow_status = new_status, new_workflow
    contract.completed_at = utcnow()
    stage_release(contract, payment)


async def complete_contract(db: AsyncSession, contract_id: int, user: User) -> Contract:
    contract = await load_contract(db, contract_id, lock=True)
    ensure_brand_of(contract, user)
    await _apply_completion(db, contract, ContractAction.COMPLETE, ContractActor.BRAND)

    record_audit(
        db,
        action="contract_completed",
        entity_type="contract",
        entity_id=contract.id,
        user_id=user.id,
        actor="brand",
        details={"platform_fee": contract.platform_fee, "creator_amount": contract.creator_amount},
    )
    await db.commit()
    await db.refresh(contract)
    logger.info(
        "Contract completed",
        extra={"contract_id": contract.id, "creator_amount": str(contract.creator_amount)},
    )
    await publish_event(
        "contract.completed", "contract", contract.id,
        brand_id=contract.brand_id, creator_id=contract.creator_id,
        creator_amount=contract.creator_amount,
    )
    return contract


async def cancel_contract(
    db: AsyncSession, contract_id: int, user: User, reason: str | None = None
) -> Contract:
    contract = await load_contract(db, contract_id, lock=True)
    actor = ensure_party(contract, user)
    contract.status, contract.workflow_status = validate_transition(
        contract.status, contract.workflow_status, ContractAction.CANCEL, actor
    )
    contract.cancelled_at = utcnow()
    contract.cancellation_reason = reason

    record_audit(
        db, action="contract_cancelled", entity_type="contract", entity_id=contract.id,
        user_id=user.id, actor=actor, details={"reason": reason},
    )
    await db.commit()
    await db.refresh(contract)
    await publish_event(
        "contract.cancelled", "contract", contract.id, cancelled_by=actor, reason=reason
    )
    return contract


async def dispute_contract(
    db: AsyncSession, contract_id: int, user: User, reason: str
) -> Contract:
    if not reason or not reason.strip():
        raise ValidationError("A dispute reason is required", code="dispute_reason_required")

    contract = await load_contract(db, contract_id, lock=True)
    actor = ensure_party(contract, user)
    contract.status, contract.workflow_status = validate_transition(
        contract.status, contract.workflow_status, ContractAction.DISPUTE, actor
    )
    contract.dispute_reason = reason.strip()

    record_audit(
        db, action="contract_disputed", entity_type="contract", entity_id=contract.id,
        user_id=user.id, actor=actor, details={"reason": contract.dispute_reason},
    )
    await db.commit()
    await db.refresh(contract)
    logger.warning(
        "Contract disputed",
        extra={"contract_id": contract.id, "opened_by": actor},
    )
    # Admins subscribe to this event to pick up the dispute
    await publish_event(
        "contract.disputed", "contract", contract.id,
        opened_by=actor, reason=contract.dispute_reason,
    )
    return contract


async def terminate_contract(
    db: AsyncSession, contract_id: int, user: User, reason: str | None = None
) -> Contract:
    contract = await load_contract(db, contract_id, lock=True)
    ensure_brand_of(contract, user)
    contract.status, contract.workflow_status = validate_transition(
        contract.status, contract.workflow_status, ContractAction.TERMINATE, ContractActor.BRAND
    )
    contract.cancelled_at = utcnow()
    contract.cancellation_reason = reason or DEFAULT_TERMINATION_REASON

    record_audit(
        db, action="contract_terminated", entity_type="contract", entity_id=contract.id,
        user_id=user.id, actor="brand", details={"reason": contract.cancellation_reason},
    )
    await db.commit()
    await db.refresh(contract)
    await publish_event(
        "contract.terminated", "contract", contract.id, reason=contract.cancellation_reason
    )
    return contract


async def retry_contract_payment(
    db: AsyncSession,
    contract_id: int,
    user: User,
    gateway: PaymentGateway | None = None,
) -> Contract:
    """Re-run the brand charge for a contract stuck in ``payment_failed``."""
    contract = await load_contract(db, contract_id, lock=True)
    actor = ensure_party(contract, user, allow_admin=True)
    validate_transition(
        contract.status, contract.workflow_status, ContractAction.RETRY_PAYMENT, actor
    )
    payment = await get_payment_for_contract(db, contract.id, lock=True)
    if payment is None:
        raise PreconditionError("Contract has no payment record", code="payment_missing")

    result = await charge_contract(db, contract, payment, gateway)
    await db.commit()
    await db.refresh(contract)

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


async def resolve_dispute(
    db: AsyncSession,
    contract_id: int,
    admin: User,
    resolution: str,
    note: str | None = None,
) -> Contract:
    """Admin closes a dispute by completing or cancelling the contract."""
    ensure_role(admin, "admin")
    contract = await load_contract(db, contract_id, lock=True)

    if resolution == "complete":
        await _apply_completion(db, contract, ContractAction.RESOLVE_COMPLETE, ContractActor.ADMIN)
        event = "contract.completed"
    elif resolution == "cancel":
        contract.status, contract.workflow_status = validate_transition(
            contract.status, contract.workflow_status,
            ContractAction.RESOLVE_CANCEL, ContractActor.ADMIN,
        )
        contract.cancelled_at = utcnow()
        contract.cancellation_reason = note or "Dispute resolved by cancellation"
        event = "contract.cancelled"
    else:
        raise ValidationError(
            f"Unknown dispute resolution '{resolution}'", code="invalid_resolution"
        )

    record_audit(
        db, action="dispute_resolved", entity_type="contract", entity_id=contract.id,
        user_id=admin.id, actor="admin", details={"resolution": resolution, "note": note},
    )
    await db.commit()
    await db.refresh(contract)
    logger.info(
        "Dispute resolved",
        extra={"contract_id": contract.id, "resolution": resolution},
    )
    await publish_event(event, "contract", contract.id, resolved_by=admin.id, resolution=resolution)
    return contract


def mark_payment_withdrawn(contract: Contract) -> None:
    """``payment_available -> payment_withdrawn``; the caller commits."""
    contract.status, contract.workflow_status = validate_transition(
        contract.status, contract.workflow_status,
        ContractAction.MARK_WITHDRAWN, ContractActor.SYSTEM,
    )


async def mark_creator_payments_withdrawn(db: AsyncSession, creator_id: int) -> list[Contract]:
    """Flag every ``payment_available`` contract of a creator as withdrawn.

    Called once a completed withdrawal has drained the creator's available
    balance, meaning every released payment has left the platform.
    """
    result = await db.execute(
        select(Contract)
        .where(
            Contract.creator_id == creator_id,
            Contract.status == ContractStatus.COMPLETED,
            Contract.workflow_status == WorkflowStatus.PAYMENT_AVAILABLE,
        )
        .with_for_update()
    )
    contracts = list(result.scalars().all())
    for contract in contracts:
        mark_payment_withdrawn(contract)
    return contracts
