"""Tests for the creator balance hold model and balance lookups."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from marketplace.core.errors import InsufficientBalanceError, ValidationError
from marketplace.models.balance import CreatorBalance
from marketplace.models.payment import PaymentRecord
from marketplace.models.withdrawal import Withdrawal
from marketplace.services import ledger


def _balance(available="0", held="0", earned="0", withdrawn="0") -> CreatorBalance:
    balance = ledger.new_balance(creator_id=2)
    balance.available_balance = Decimal(available)
    balance.held_balance = Decimal(held)
    balance.total_earned = Decimal(earned)
    balance.total_withdrawn = Decimal(withdrawn)
    return balance


def _result(value=None, scalar=None, row=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = scalar
    result.one.return_value = row
    return result


class TestHoldModel:
    def test_credit_increases_available_and_earned(self):
        balance = _balance()
        ledger.credit_earning(balance, Decimal("950"))
        assert balance.available_balance == Decimal("950.00")
        assert balance.total_earned == Decimal("950.00")

    def test_hold_then_capture_debits_once(self):
        balance = _balance(available="950", earned="950")
        ledger.place_hold(balance, Decimal("950"))
        assert balance.available_balance == 0
        assert balance.held_balance == Decimal("950")

        ledger.capture_hold(balance, Decimal("950"))
        assert balance.available_balance == 0
        assert balance.held_balance == 0
        assert balance.total_withdrawn == Decimal("950")

    def test_hold_then_release_restores_available(self):
        balance = _balance(available="300")
        ledger.place_hold(balance, Decimal("120.50"))
        ledger.release_hold(balance, Decimal("120.50"))
        assert balance.available_balance == Decimal("300")
        assert balance.held_balance == 0
        assert balance.total_withdrawn == 0

    def test_insufficient_balance_leaves_balance_untouched(self):
        balance = _balance(available="950")
        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger.place_hold(balance, Decimal("1000"))
        assert exc_info.value.code == "insufficient_balance"
        assert balance.available_balance == Decimal("950")
        assert balance.held_balance == 0

    def test_can_withdraw_exact_amount(self):
        balance = _balance(available="50")
        assert ledger.can_withdraw(balance, Decimal("50")) is True
        assert ledger.can_withdraw(balance, Decimal("50.01")) is False
        assert ledger.can_withdraw(balance, Decimal("0")) is False

    def test_capture_more_than_held_is_refused(self):
        balance = _balance(held="10")
        with pytest.raises(ValidationError):
            ledger.capture_hold(balance, Decimal("11"))
        assert balance.held_balance == Decimal("10")

    def test_credit_rejects_non_positive_amount(self):
        with pytest.raises(ValidationError):
            ledger.credit_earning(_balance(), Decimal("0"))

    def test_total_balance_excludes_holds(self):
        balance = _balance(available="40", held="60")
        assert balance.total_balance == Decimal("40")


class TestBalanceQueries:
    @pytest.mark.asyncio
    async def test_get_balance_for_update_creates_missing_row(self):
        db = AsyncMock()
        db.add = MagicMock()
        db.execute = AsyncMock(return_value=_result(None))

        balance = await ledger.get_balance_for_update(db, 7)

        assert balance.creator_id == 7
        assert balance.available_balance == 0
        db.add.assert_called_once_with(balance)
        db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_balance_for_update_returns_existing_row(self):
        existing = _balance(available="10")
        db = AsyncMock()
        db.add = MagicMock()
        db.execute = AsyncMock(return_value=_result(existing))

        assert await ledger.get_balance_for_update(db, 2) is existing
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_balance_summary(self):
        existing = _balance(available="100", held="50", earned="150")
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=[
            _result(existing),
            _result(scalar=Decimal("150")),
            _result(scalar=Decimal("95")),
            _result(row=(1, Decimal("50"))),
        ])

        summary = await ledger.get_balance_summary(db, 2)

        assert summary["available_balance"] == Decimal("100")
        assert summary["held_balance"] == Decimal("50")
        assert summary["earnings_this_year"] == Decimal("150.00")
        assert summary["earnings_this_month"] == Decimal("95.00")
        assert summary["pending_withdrawals_count"] == 1
        assert summary["pending_withdrawals_amount"] == Decimal("50.00")


def _days_ago(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def _history_db():
    payments = MagicMock()
    payments.all.return_value = [
        (
            PaymentRecord(
                id=1, contract_id=20, creator_id=2, creator_amount=Decimal("950.00"),
                stage="released", status="completed", processed_at=_days_ago(10),
            ),
            "Launch video",
        ),
        (
            PaymentRecord(
                id=2, contract_id=21, creator_id=2, creator_amount=Decimal("500.00"),
                stage="released", status="completed", processed_at=_days_ago(40),
            ),
            None,
        ),
    ]
    withdrawals = MagicMock()
    withdrawals.scalars.return_value.all.return_value = [
        Withdrawal(id=31, creator_id=2, amount=Decimal("300.00"), withdrawal_method="pix",
                   status="completed", created_at=_days_ago(35)),
        Withdrawal(id=32, creator_id=2, amount=Decimal("100.00"), withdrawal_method="bank_transfer",
                   status="failed", created_at=_days_ago(5)),
        Withdrawal(id=33, creator_id=2, amount=Decimal("200.00"), withdrawal_method="pix",
                   status="pending", created_at=_days_ago(2)),
    ]
    db = AsyncMock()
    db.execute = AsyncMock(side_effect=[payments, withdrawals])
    return db


class TestBalanceHistory:
    @pytest.mark.asyncio
    async def test_full_history_newest_first_with_running_balance(self):
        history = await ledger.get_balance_history(_history_db(), 2)

        assert [(e["type"], e["id"]) for e in history] == [
            ("withdrawal", 33), ("withdrawal", 32), ("earning", 1),
            ("withdrawal", 31), ("earning", 2),
        ]
        assert [e["running_balance"] for e in history] == [
            Decimal("950.00"), Decimal("1150.00"), Decimal("1150.00"),
            Decimal("200.00"), Decimal("500.00"),
        ]
        assert history[0]["amount"] == Decimal("-200.00")
        assert history[0]["description"] == "Withdrawal via PIX"
        assert history[2]["description"] == "Payment for: Launch video"
        assert history[4]["description"] == "Payment for: contract #21"

    @pytest.mark.asyncio
    async def test_days_window_keeps_balance_from_older_entries(self):
        history = await ledger.get_balance_history(_history_db(), 2, days=30)

        assert [e["id"] for e in history] == [33, 32, 1]
        assert history[-1]["running_balance"] == Decimal("1150.00")

    @pytest.mark.asyncio
    async def test_filter_by_type(self):
        history = await ledger.get_balance_history(_history_db(), 2, entry_type="withdrawal")

        assert [e["id"] for e in history] == [33, 32, 31]
        assert all(e["amount"] < 0 for e in history)

    @pytest.mark.asyncio
    async def test_unknown_type_is_refused(self):
        db = AsyncMock()
        with pytest.raises(ValidationError) as exc_info:
            await ledger.get_balance_history(db, 2, entry_type="refund")
        assert exc_info.value.code == "invalid_history_type"
        db.execute.assert_not_awaited()
