"""Creator withdrawals on top of the balance hold model.

Creating a withdrawal places a hold on the creator's available balance in
the same transaction that inserts the row. Processing marks the row
``processing`` and commits before calling the gateway; the outcome then
either captures the hold (payout sent) or releases it (payout failed).
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.schemas import WithdrawalCreate
from marketplace.core.config import settings
from marketplace.core.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from marketplace.db.base import utcnow
from marketplace.models.user import User
from marketplace.models.withdrawal import Withdrawal
from marketplace.services import ledger
from marketplace.services.audit import record_audit
from marketplace.services.authorization import ensure_role
from marketplace.services.contract import mark_creator_payments_withdrawn
from marketplace.services.events import publish_event
from marketplace.services.fees import to_money
from marketplace.services.gateway.base import PaymentGateway, run_with_timeout
from marketplace.services.gateway.provider import get_gateway
from marketplace.services.withdrawal_state_machine import (
    METHOD_LABELS,
    OPEN_STATUSES,
    WithdrawalAction,
    WithdrawalMethod,
    WithdrawalStatus,
    validate_transition,
)

logger = logging.getLogger(__name__)

# Required keys in withdrawal_details per method, with allowed values where restricted
_REQUIRED_DETAILS: dict[WithdrawalMethod, dict[str, frozenset[str] | None]] = {
    WithdrawalMethod.BANK_TRANSFER: {
        "bank": None,
        "agency": None,
        "account": None,
        "account_type": frozenset({"checking", "savings"}),
        "holder_name": None,
    },
    WithdrawalMethod.PIX: {
        "pix_key": None,
        "pix_key_type": frozenset({"cpf", "cnpj", "email", "phone", "random"}),
        "holder_name": None,
    },
    WithdrawalMethod.PAGARME_ACCOUNT: {
        "holder_name": None,
    },
}


def withdrawal_methods() -> list[dict]:
    """Payout methods with their configured limits and required details."""
    return [
        {
            "id": method.value,
            "name": METHOD_LABELS[method],
            "min_amount": to_money(settings.withdrawal_min_amounts.get(method, 0)),
            "max_amount": to_money(settings.withdrawal_max_amount),
            "required_details": list(_REQUIRED_DETAILS[method]),
        }
        for method in WithdrawalMethod
    ]


def validate_withdrawal_request(amount, method: str, details: dict | None) -> Decimal:
    """Check method, amount limits and payout details; return the normalized amount."""
    try:
        method = WithdrawalMethod(method)
    except ValueError:
        raise ValidationError(f"Unsupported withdrawal method '{method}'", code="invalid_method")

    amount = to_money(amount)
    minimum = to_money(settings.withdrawal_min_amounts.get(method, 0))
    if amount < minimum:
        raise ValidationError(
            f"Minimum amount for {method} is {minimum}", code="below_minimum"
        )
    if amount > settings.withdrawal_max_amount:
        raise ValidationError(
            f"Maximum withdrawal amount is {settings.withdrawal_max_amount}",
            code="above_maximum",
        )

    details = details or {}
    for key, allowed in _REQUIRED_DETAILS[method].items():
        value = details.get(key)
        if not value or not str(value).strip():
            raise ValidationError(
                f"withdrawal_details.{key} is required for {method}", code="invalid_details"
            )
        if allowed is not None and value not in allowed:
            raise ValidationError(
                f"withdrawal_details.{key} must be one of {sorted(allowed)}",
                code="invalid_details",
            )
    return amount


async def _load_withdrawal(
    db: AsyncSession, withdrawal_id: int, *, lock: bool = False
) -> Withdrawal:
    stmt = select(Withdrawal).where(Withdrawal.id == withdrawal_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    withdrawal = result.scalar_one_or_none()
    if not withdrawal:
        raise NotFoundError("Withdrawal not found")
    return withdrawal


async def create_withdrawal(db: AsyncSession, creator: User, data: WithdrawalCreate) -> Withdrawal:
    ensure_role(creator, "creator")
    amount = validate_withdrawal_request(
        data.amount, data.withdrawal_method, data.withdrawal_details
    )

    # The balance lock serializes every withdrawal request of this creator
    balance = await ledger.get_balance_for_update(db, creator.id)

    result = await db.execute(
        select(func.count(Withdrawal.id)).where(
            Withdrawal.creator_id == creator.id,
            Withdrawal.status.in_([s.value for s in OPEN_STATUSES]),
        )
    )
    open_count = result.scalar_one()
    if open_count >= settings.max_pending_withdrawals:
        raise PreconditionError(
            f"You can have at most {settings.max_pending_withdrawals} pending withdrawals",
            code="too_many_pending",
        )

    ledger.place_hold(balance, amount)

    withdrawal = Withdrawal(
        creator_id=creator.id,
        amount=amount,
        withdrawal_method=data.withdrawal_method,
        withdrawal_details=dict(data.withdrawal_details),
        status=WithdrawalStatus.PENDING,
    )
    db.add(withdrawal)
    await db.flush()

    record_audit(
        db, action="withdrawal_requested", entity_type="withdrawal", entity_id=withdrawal.id,
        user_id=creator.id, actor="creator",
        details={"amount": amount, "method": data.withdrawal_method},
    )
    await db.commit()
    await db.refresh(withdrawal)

    logger.info(
        "Withdrawal requested",
        extra={"withdrawal_id": withdrawal.id, "creator_id": creator.id, "amount": str(amount)},
    )
    await publish_event(
        "withdrawal.created", "withdrawal", withdrawal.id,
        creator_id=creator.id, amount=amount, method=data.withdrawal_method,
    )
    return withdrawal


async def process_withdrawal(
    db: AsyncSession,
    withdrawal_id: int,
    gateway: PaymentGateway | None = None,
) -> Withdrawal:
    """Run the payout for a pending withdrawal.

    ``processing`` is committed before the gateway call so a crash mid-payout
    leaves a visible in-flight row rather than a pending one that a second
    worker would pay out again.
    """
    withdrawal = await _load_withdrawal(db, withdrawal_id, lock=True)
    withdrawal.status = validate_transition(withdrawal.status, WithdrawalAction.PROCESS)
    await db.commit()

    gateway = gateway or get_gateway()
    reference = f"withdrawal_{withdrawal.id}"
    result = await run_with_timeout(
        gateway.payout(
            withdrawal.amount, withdrawal.withdrawal_method,
            withdrawal.withdrawal_details, reference,
        ),
        operation="payout",
        reference=reference,
    )

    withdrawal = await _load_withdrawal(db, withdrawal_id, lock=True)
    balance = await ledger.get_balance_for_update(db, withdrawal.creator_id)
    drained: list = []
    if result.success:
        withdrawal.status = validate_transition(withdrawal.status, WithdrawalAction.SUCCEED)
        withdrawal.transaction_id = result.transaction_ref
        withdrawal.processed_at = utcnow()
        withdrawal.failure_reason = None
        ledger.capture_hold(balance, withdrawal.amount)
        if balance.available_balance == 0 and balance.held_balance == 0:
            drained = await mark_creator_payments_withdrawn(db, withdrawal.creator_id)
    else:
        withdrawal.status = validate_transition(withdrawal.status, WithdrawalAction.FAIL)
        withdrawal.failure_reason = result.reason
        ledger.release_hold(balance, withdrawal.amount)

    record_audit(
        db,
        action="withdrawal_completed" if result.success else "withdrawal_failed",
        entity_type="withdrawal",
        entity_id=withdrawal.id,
        user_id=withdrawal.creator_id,
        details={
            "amount": withdrawal.amount,
            "transaction_id": result.transaction_ref,
            "reason": result.reason,
        },
    )
    await db.commit()
    await db.refresh(withdrawal)

    if result.success:
        logger.info(
            "Withdrawal completed",
            extra={"withdrawal_id": withdrawal.id, "transaction_id": result.transaction_ref},
        )
        await publish_event(
            "withdrawal.completed", "withdrawal", withdrawal.id,
            creator_id=withdrawal.creator_id, amount=withdrawal.amount,
            transaction_id=result.transaction_ref,
        )
        for contract in drained:
            await publish_event(
                "contract.payment_withdrawn", "contract", contract.id,
                creator_id=withdrawal.creator_id,
            )
    else:
        logger.warning(
            "Withdrawal failed",
            extra={"withdrawal_id": withdrawal.id, "reason": result.reason},
        )
        await publish_event(
            "withdrawal.failed", "withdrawal", withdrawal.id,
            creator_id=withdrawal.creator_id, reason=result.reason,
        )
    return withdrawal


async def cancel_withdrawal(
    db: AsyncSession, withdrawal_id: int, creator: User, reason: str | None = None
) -> Withdrawal:
    withdrawal = await _load_withdrawal(db, withdrawal_id, lock=True)
    if withdrawal.creator_id != creator.id:
        raise AuthorizationError("You can only cancel your own withdrawals")
    withdrawal.status = validate_transition(withdrawal.status, WithdrawalAction.CANCEL)
    withdrawal.failure_reason = reason or "Cancelled by creator"

    balance = await ledger.get_balance_for_update(db, withdrawal.creator_id)
    ledger.release_hold(balance, withdrawal.amount)

    record_audit(
        db, action="withdrawal_cancelled", entity_type="withdrawal", entity_id=withdrawal.id,
        user_id=creator.id, actor="creator", details={"reason": withdrawal.failure_reason},
    )
    await db.commit()
    await db.refresh(withdrawal)
    await publish_event(
        "withdrawal.cancelled", "withdrawal", withdrawal.id, creator_id=creator.id
    )
    return withdrawal


async def get_withdrawal(db: AsyncSession, withdrawal_id: int, user: User) -> Withdrawal:
    withdrawal = await _load_withdrawal(db, withdrawal_id)
    if withdrawal.creator_id != user.id and not user.is_admin:
        # Do not leak other creators' payout details
        raise NotFoundError("Withdrawal not found")
    return withdrawal


async def list_withdrawals(
    db: AsyncSession,
    creator: User,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Withdrawal]:
    stmt = select(Withdrawal).where(Withdrawal.creator_id == creator.id)
    if status:
        stmt = stmt.where(Withdrawal.status == status)
    result = await db.execute(stmt.order_by(Withdrawal.id.desc()).offset(offset).limit(limit))
    return list(result.scalars().all())


async def list_all_withdrawals(
    db: AsyncSession,
    status: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[Withdrawal]:
    """Withdrawals of every creator for the admin payout queue, oldest first."""
    stmt = select(Withdrawal)
    if status:
        stmt = stmt.where(Withdrawal.status == status)
    result = await db.execute(
        stmt.order_by(Withdrawal.created_at, Withdrawal.id).offset(offset).limit(limit)
    )
    return list(result.scalars().all())


async def list_pending_withdrawal_ids(db: AsyncSession, limit: int = 100) -> list[int]:
    result = await db.execute(
        select(Withdrawal.id)
        .where(Withdrawal.status == WithdrawalStatus.PENDING)
        .order_by(Withdrawal.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def withdrawal_statistics(db: AsyncSession, creator_id: int) -> dict:
    result = await db.execute(
        select(
            Withdrawal.status,
            func.count(Withdrawal.id),
            func.coalesce(func.sum(Withdrawal.amount), 0),
        )
        .where(Withdrawal.creator_id == creator_id)
        .group_by(Withdrawal.status)
    )
    by_status = {s.value: 0 for s in WithdrawalStatus}
    amount_by_status = {s.value: to_money(0) for s in WithdrawalStatus}
    for status, count, total in result.all():
        by_status[status] = count
        amount_by_status[status] = to_money(total)

    now = datetime.now(timezone.utc)
    completed_year = (
        select(func.coalesce(func.sum(Withdrawal.amount), 0))
        .where(
            Withdrawal.creator_id == creator_id,
            Withdrawal.status == WithdrawalStatus.COMPLETED,
            extract("year", Withdrawal.processed_at) == now.year,
        )
    )
    year_total = (await db.execute(completed_year)).scalar_one()
    month_total = (
        await db.execute(
            completed_year.where(extract("month", Withdrawal.processed_at) == now.month)
        )
    ).scalar_one()

    return {
        "total_withdrawals": sum(by_status.values()),
        "by_status": by_status,
        "amount_by_status": amount_by_status,
        "completed_this_month": to_money(month_total),
        "completed_this_year": to_money(year_total),
    }
