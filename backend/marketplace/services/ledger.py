"""Creator balance accounting.

The arithmetic helpers mutate a ``CreatorBalance`` in memory and never touch
the database; callers load the row with ``get_balance_for_update`` so the
check and the mutation happen under the same row lock and commit together.

Withdrawals use a hold: the amount moves from ``available_balance`` into
``held_balance`` when the request is created, and the hold is later either
captured (payout succeeded) or released back (payout failed or cancelled).
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.errors import InsufficientBalanceError, ValidationError
from marketplace.models.balance import CreatorBalance
from marketplace.models.contract import Contract
from marketplace.models.payment import PaymentRecord
from marketplace.models.withdrawal import Withdrawal
from marketplace.services.fees import to_money
from marketplace.services.withdrawal_state_machine import (
    METHOD_LABELS,
    OPEN_STATUSES,
    WithdrawalStatus,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def new_balance(creator_id: int) -> CreatorBalance:
    return CreatorBalance(
        creator_id=creator_id,
        available_balance=ZERO,
        pending_balance=ZERO,
        held_balance=ZERO,
        total_earned=ZERO,
        total_withdrawn=ZERO,
    )


def _positive(amount) -> Decimal:
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero", code="invalid_amount")
    return amount


def can_withdraw(balance: CreatorBalance, amount) -> bool:
    amount = to_money(amount)
    return amount > 0 and balance.available_balance >= amount


def credit_earning(balance: CreatorBalance, amount) -> None:
    """Released escrow funds become immediately withdrawable."""
    amount = _positive(amount)
    balance.available_balance += amount
    balance.total_earned += amount


def place_hold(balance: CreatorBalance, amount) -> None:
    amount = to_money(amount)
    if not can_withdraw(balance, amount):
        raise InsufficientBalanceError(balance.available_balance, amount)
    balance.available_balance -= amount
    balance.held_balance += amount


def capture_hold(balance: CreatorBalance, amount) -> None:
    """Payout went through: the held amount leaves the platform."""
    amount = _positive(amount)
    if balance.held_balance < amount:
        raise ValidationError(
            f"Held balance {balance.held_balance} is lower than {amount}", code="hold_mismatch"
        )
    balance.held_balance -= amount
    balance.total_withdrawn += amount


def release_hold(balance: CreatorBalance, amount) -> None:
    """Payout failed or was cancelled: the held amount is withdrawable again."""
    amount = _positive(amount)
    if balance.held_balance < amount:
        raise ValidationError(
            f"Held balance {balance.held_balance} is lower than {amount}", code="hold_mismatch"
        )
    balance.held_balance -= amount
    balance.available_balance += amount


async def get_balance_for_update(db: AsyncSession, creator_id: int) -> CreatorBalance:
    """Return the creator's balance row locked for update, creating it if missing."""
    result = await db.execute(
        select(CreatorBalance)
        .where(CreatorBalance.creator_id == creator_id)
        .with_for_update()
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        balance = new_balance(creator_id)
        db.add(balance)
        await db.flush()
        logger.info("Created balance row", extra={"creator_id": creator_id})
    return balance


async def get_balance(db: AsyncSession, creator_id: int) -> CreatorBalance:
    """Read-only balance lookup; a creator without a row has an all-zero balance."""
    result = await db.execute(
        select(CreatorBalance).where(CreatorBalance.creator_id == creator_id)
    )
    return result.scalar_one_or_none() or new_balance(creator_id)


async def get_balance_summary(db: AsyncSession, creator_id: int) -> dict:
    """Balance plus earnings and open-withdrawal aggregates for the dashboard."""
    balance = await get_balance(db, creator_id)
    now = datetime.now(timezone.utc)

    earned = (
        select(func.coalesce(func.sum(PaymentRecord.creator_amount), 0))
        .where(
            PaymentRecord.creator_id == creator_id,
            PaymentRecord.stage == "released",
            PaymentRecord.status == "completed",
            extract("year", PaymentRecord.processed_at) == now.year,
        )
    )
    year_total = (await db.execute(earned)).scalar_one()
    month_total = (
        await db.execute(earned.where(extract("month", PaymentRecord.processed_at) == now.month))
    ).scalar_one()

    open_result = await db.execute(
        select(func.count(Withdrawal.id), func.coalesce(func.sum(Withdrawal.amount), 0))
        .where(
            Withdrawal.creator_id == creator_id,
            Withdrawal.status.in_([s.value for s in OPEN_STATUSES]),
        )
    )
    open_count, open_amount = open_result.one()

    return {
        "creator_id": creator_id,
        "available_balance": balance.available_balance,
        "pending_balance": balance.pending_balance,
        "held_balance": balance.held_balance,
        "total_balance": balance.total_balance,
        "total_earned": balance.total_earned,
        "total_withdrawn": balance.total_withdrawn,
        "earnings_this_month": to_money(month_total),
        "earnings_this_year": to_money(year_total),
        "pending_withdrawals_count": open_count,
        "pending_withdrawals_amount": to_money(open_amount),
    }


# Withdrawals whose amount has left the available balance
_DEBITED_STATUSES = OPEN_STATUSES | {WithdrawalStatus.COMPLETED}

HISTORY_TYPES = ("earning", "withdrawal")


async def get_balance_history(
    db: AsyncSession,
    creator_id: int,
    days: int | None = None,
    entry_type: str | None = None,
) -> list[dict]:
    """Earnings and withdrawals, newest first, each with the balance after it.

    The running balance is computed over the creator's whole history before
    the ``days`` and ``entry_type`` filters are applied, so a filtered page
    still shows the real balance at each point. Failed and cancelled
    withdrawals are listed but do not move the balance.
    """
    if entry_type is not None and entry_type not in HISTORY_TYPES:
        raise ValidationError(f"Unknown history type '{entry_type}'", code="invalid_history_type")

    payments = await db.execute(
        select(PaymentRecord, Contract.title)
        .join(Contract, Contract.id == PaymentRecord.contract_id)
        .where(
            PaymentRecord.creator_id == creator_id,
            PaymentRecord.stage == "released",
            PaymentRecord.status == "completed",
        )
    )
    entries = [
        {
            "type": "earning",
            "id": payment.id,
            "amount": to_money(payment.creator_amount),
            "description": f"Payment for: {title or f'contract #{payment.contract_id}'}",
            "status": payment.status,
            "date": payment.processed_at or payment.created_at,
        }
        for payment, title in payments.all()
    ]

    withdrawals = await db.execute(
        select(Withdrawal).where(Withdrawal.creator_id == creator_id)
    )
    entries.extend(
        {
            "type": "withdrawal",
            "id": withdrawal.id,
            "amount": -to_money(withdrawal.amount),
            "description": "Withdrawal via "
            + METHOD_LABELS.get(withdrawal.withdrawal_method, withdrawal.withdrawal_method),
            "status": withdrawal.status,
            "date": withdrawal.created_at,
        }
        for withdrawal in withdrawals.scalars().all()
    )

    entries.sort(key=lambda e: (e["date"], e["type"] == "withdrawal", e["id"]))
    running = ZERO
    for entry in entries:
        if entry["type"] == "earning" or entry["status"] in _DEBITED_STATUSES:
            running += entry["amount"]
        entry["running_balance"] = running

    if days is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        entries = [e for e in entries if e["date"] >= cutoff]
    if entry_type is not None:
        entries = [e for e in entries if e["type"] == entry_type]
    entries.reverse()
    return entries
