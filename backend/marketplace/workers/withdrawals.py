"""Celery tasks that pay out pending withdrawals.

- process_pending_withdrawals: periodic batch, one failure never stops it
- process_withdrawal: on-demand payout of a single withdrawal
"""

import logging

from marketplace.db.session import async_session_factory
from marketplace.workers import celery_app, worker_loop

logger = logging.getLogger(__name__)


async def _process_one(withdrawal_id: int) -> str:
    from marketplace.services.withdrawal import process_withdrawal

    async with async_session_factory() as db:
        try:
            withdrawal = await process_withdrawal(db, withdrawal_id)
            return withdrawal.status
        except Exception:
            await db.rollback()
            raise
        finally:
            await db.close()


async def _process_batch() -> dict[str, int]:
    from marketplace.services.withdrawal import list_pending_withdrawal_ids

    async with async_session_factory() as db:
        try:
            ids = await list_pending_withdrawal_ids(db)
        finally:
            await db.close()

    stats = {"processed": 0, "completed": 0, "failed": 0, "errors": 0}
    for withdrawal_id in ids:
        try:
            status = await _process_one(withdrawal_id)
        except Exception:
            # Picked up by another worker, or the row changed under us
            logger.exception("Failed to process withdrawal %d", withdrawal_id)
            stats["errors"] += 1
            continue
        stats["processed"] += 1
        if status == "completed":
            stats["completed"] += 1
        else:
            stats["failed"] += 1

    logger.info("Processed pending withdrawals", extra=stats)
    return stats


@celery_app.task(
    name="process_pending_withdrawals", bind=True, max_retries=3, default_retry_delay=60
)
def process_pending_withdrawals(self) -> dict[str, int]:
    try:
        return worker_loop().run_until_complete(_process_batch())
    except Exception as exc:
        logger.exception("process_pending_withdrawals failed")
        raise self.retry(exc=exc)


@celery_app.task(name="process_withdrawal", bind=True, max_retries=3, default_retry_delay=60)
def process_withdrawal(self, withdrawal_id: int) -> str:
    try:
        return worker_loop().run_until_complete(_process_one(withdrawal_id))
    except Exception as exc:
        logger.exception("process_withdrawal failed for withdrawal %d", withdrawal_id)
        raise self.retry(exc=exc)
