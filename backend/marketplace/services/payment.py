"""Escrow payment record operations.

One ``PaymentRecord`` row follows a contract through its money legs: the
accept-time charge (``authorized`` -> ``captured``) and the complete-time
escrow release (``released``, pending until the creator's review). None of
the functions here commit; they stage changes on the caller's transaction.
"""

import logging
from datetime import timedelta
from enum import StrEnum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import PreconditionError
from marketplace.db.base import utcnow
from marketplace.models.contract import Contract
from marketplace.models.payment import PaymentRecord
from marketplace.services import ledger
from marketplace.services.audit import record_audit
from marketplace.services.contract_state_machine import (
    ContractAction,
    ContractActor,
    validate_transition,
)
from marketplace.services.gateway.base import GatewayResult, PaymentGateway, run_with_timeout
from marketplace.services.gateway.provider import get_gateway

logger = logging.getLogger(__name__)


class PaymentStage(StrEnum):
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    RELEASED = "released"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def new_payment_record(contract: Contract, payment_method: str = "credit_card") -> PaymentRecord:
    return PaymentRecord(
        contract_id=contract.id,
        brand_id=contract.brand_id,
        creator_id=contract.creator_id,
        total_amount=contract.budget,
        platform_fee=contract.platform_fee,
        creator_amount=contract.creator_amount,
        payment_method=payment_method,
        stage=PaymentStage.AUTHORIZED,
        status=PaymentStatus.PENDING,
    )


async def get_payment_for_contract(
    db: AsyncSession, contract_id: int, *, lock: bool = False
) -> PaymentRecord | None:
    stmt = select(PaymentRecord).where(PaymentRecord.contract_id == contract_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def charge_contract(
    db: AsyncSession,
    contract: Contract,
    payment: PaymentRecord,
    gateway: PaymentGateway | None = None,
) -> GatewayResult:
    """Charge the brand for a contract awaiting payment.

    Gateway failures never raise: they are absorbed into
    ``payment_failed`` on the contract and ``failed`` on the record.
    """
    gateway = gateway or get_gateway()
    reference = f"contract_{contract.id}"
    result = await run_with_timeout(
        gateway.charge(payment.total_amount, payment.payment_method, reference),
        operation="charge",
        reference=reference,
    )

    now = utcnow()
    if result.success:
        contract.status, contract.workflow_status = validate_transition(
            contract.status, contract.workflow_status,
            ContractAction.CONFIRM_PAYMENT, ContractActor.SYSTEM,
        )
        contract.started_at = now
        contract.expected_completion_at = now + timedelta(days=contract.estimated_days)
        payment.stage = PaymentStage.CAPTURED
        payment.status = PaymentStatus.COMPLETED
        payment.transaction_id = result.transaction_ref
        payment.failure_reason = None
        payment.processed_at = now
        logger.info(
            "Contract payment captured",
            extra={"contract_id": contract.id, "transaction_id": result.transaction_ref},
        )
    else:
        contract.status, contract.workflow_status = validate_transition(
            contract.status, contract.workflow_status,
            ContractAction.FAIL_PAYMENT, ContractActor.SYSTEM,
        )
        payment.stage = PaymentStage.AUTHORIZED
        payment.status = PaymentStatus.FAILED
        payment.failure_reason = result.reason
        logger.warning(
            "Contract payment failed",
            extra={"contract_id": contract.id, "reason": result.reason},
        )

    record_audit(
        db,
        action="payment_captured" if result.success else "payment_failed",
        entity_type="contract",
        entity_id=contract.id,
        details={
            "amount": payment.total_amount,
            "transaction_id": result.transaction_ref,
            "reason": result.reason,
        },
    )
    return result


def stage_release(contract: Contract, payment: PaymentRecord) -> None:
    """Copy the completion fee split onto the record and park it for review."""
    payment.total_amount = contract.budget
    payment.platform_fee = contract.platform_fee
    payment.creator_amount = contract.creator_amount
    payment.stage = PaymentStage.RELEASED
    payment.status = PaymentStatus.PENDING
    payment.failure_reason = None
    payment.processed_at = None


async def release_after_review(db: AsyncSession, contract: Contract) -> PaymentRecord:
    """Release escrow to the creator once they have reviewed the contract.

    The contract must be ``completed/waiting_review`` and its record
    ``released/pending``; the record is completed, the creator's balance is
    credited with ``creator_amount`` and the contract becomes
    ``payment_available``.
    """
    new_status, new_workflow = validate_transition(
        contract.status, contract.workflow_status,
        ContractAction.RELEASE_PAYMENT, ContractActor.SYSTEM,
    )
    payment = await get_payment_for_contract(db, contract.id, lock=True)
    if (
        payment is None
        or payment.stage != PaymentStage.RELEASED
        or payment.status != PaymentStatus.PENDING
    ):
        raise PreconditionError(
            "No pending escrow release for this contract", code="payment_not_pending"
        )

    payment.status = PaymentStatus.COMPLETED
    payment.processed_at = utcnow()

    balance = await ledger.get_balance_for_update(db, contract.creator_id)
    ledger.credit_earning(balance, payment.creator_amount)

    contract.status, contract.workflow_status = new_status, new_workflow

    record_audit(
        db,
        action="payment_released",
        entity_type="contract",
        entity_id=contract.id,
        user_id=contract.creator_id,
        details={"creator_amount": payment.creator_amount},
    )
    logger.info(
        "Escrow released to creator",
        extra={
            "contract_id": contract.id,
            "creator_id": contract.creator_id,
            "amount": str(payment.creator_amount),
        },
    )
    return payment
