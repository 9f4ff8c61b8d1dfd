"""Celery application for the marketplace background jobs.

Payouts run on their own queue so a slow gateway never delays the offer
expiry sweep.
"""

import asyncio

from celery import Celery
from celery.schedules import crontab

from marketplace.core.config import settings
from marketplace.core.logging_config import setup_logging

_loop: asyncio.AbstractEventLoop | None = None


def worker_loop() -> asyncio.AbstractEventLoop:
    """Event loop shared by every task in this worker process.

    The asyncpg pool binds its connections to the loop that opened them, so
    a fresh loop per task would fail on the second task.
    """
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


setup_logging("worker")

celery_app = Celery("marketplace", broker=settings.redis_url, backend=settings.redis_url)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A payout task lost mid-flight is redelivered; process_withdrawal
    # refuses anything that is no longer pending.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_hijack_root_logger=False,
    task_routes={
        "process_pending_withdrawals": {"queue": "payouts"},
        "process_withdrawal": {"queue": "payouts"},
    },
    beat_schedule={
        "offers-expire-hourly": {
            "task": "expire_stale_offers",
            "schedule": crontab(minute=0),
        },
        "withdrawals-payout-every-5-minutes": {
            "task": "process_pending_withdrawals",
            "schedule": crontab(minute="*/5"),
        },
    },
)

# Register tasks
from marketplace.workers import offer_expiry, withdrawals  # noqa: E402, F401
