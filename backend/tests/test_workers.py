"""Tests for the Celery worker coroutines: offer expiry sweep and withdrawal payouts."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from marketplace.workers import offer_expiry, withdrawals


def _session_factory(db):
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=db)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    return factory


class TestOfferExpiryWorker:
    @pytest.mark.asyncio
    async def test_sweep_returns_count(self, monkeypatch):
        db = AsyncMock()
        sweep = AsyncMock(return_value=4)
        monkeypatch.setattr(offer_expiry, "async_session_factory", _session_factory(db))
        monkeypatch.setattr("marketplace.services.offer.expire_stale_offers", sweep)

        assert await offer_expiry._expire() == 4
        sweep.assert_awaited_once_with(db)
        db.close.assert_awaited_once()


class TestWithdrawalWorker:
    @pytest.mark.asyncio
    async def test_process_one_returns_status(self, monkeypatch):
        db = AsyncMock()
        process = AsyncMock(return_value=MagicMock(status="completed"))
        monkeypatch.setattr(withdrawals, "async_session_factory", _session_factory(db))
        monkeypatch.setattr("marketplace.services.withdrawal.process_withdrawal", process)

        assert await withdrawals._process_one(40) == "completed"
        process.assert_awaited_once_with(db, 40)

    @pytest.mark.asyncio
    async def test_process_one_rolls_back_on_error(self, monkeypatch):
        db = AsyncMock()
        monkeypatch.setattr(withdrawals, "async_session_factory", _session_factory(db))
        monkeypatch.setattr(
            "marketplace.services.withdrawal.process_withdrawal",
            AsyncMock(side_effect=RuntimeError("row locked")),
        )

        with pytest.raises(RuntimeError):
            await withdrawals._process_one(40)
        db.rollback.assert_awaited_once()
        db.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_batch_continues_past_errors(self, monkeypatch):
        db = AsyncMock()
        monkeypatch.setattr(withdrawals, "async_session_factory", _session_factory(db))
        monkeypatch.setattr(
            "marketplace.services.withdrawal.list_pending_withdrawal_ids",
            AsyncMock(return_value=[1, 2, 3]),
        )
        outcomes = {1: "completed", 3: "failed"}

        async def fake_process_one(withdrawal_id):
            if withdrawal_id not in outcomes:
                raise RuntimeError("gone")
            return outcomes[withdrawal_id]

        monkeypatch.setattr(withdrawals, "_process_one", fake_process_one)

        stats = await withdrawals._process_batch()

        assert stats == {"processed": 2, "completed": 1, "failed": 1, "errors": 1}

    @pytest.mark.asyncio
    async def test_empty_batch(self, monkeypatch):
        monkeypatch.setattr(withdrawals, "async_session_factory", _session_factory(AsyncMock()))
        monkeypatch.setattr(
            "marketplace.services.withdrawal.list_pending_withdrawal_ids",
            AsyncMock(return_value=[]),
        )
        assert await withdrawals._process_batch() == {
            "processed": 0, "completed": 0, "failed": 0, "errors": 0,
        }

    def test_tasks_are_registered(self):
        from marketplace.workers import celery_app

        for name in ("expire_stale_offers", "process_pending_withdrawals", "process_withdrawal"):
            assert name in celery_app.tasks
        schedule = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
        assert schedule == {"expire_stale_offers", "process_pending_withdrawals"}
        assert celery_app.conf.task_routes["process_withdrawal"] == {"queue": "payouts"}
