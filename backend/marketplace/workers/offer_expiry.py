"""Celery task that persists ``expired`` on stale pending offers."""

import logging

from marketplace.db.session import async_session_factory
from marketplace.workers import celery_app, worker_loop

logger = logging.getLogger(__name__)


async def _expire() -> int:
    from marketplace.services.offer import expire_stale_offers

    async with async_session_factory() as db:
        try:
            count = await expire_stale_offers(db)
            logger.info("Expired %d stale offers", count)
            return count
        finally:
            await db.close()


@celery_app.task(name="expire_stale_offers", bind=True, max_retries=3, default_retry_delay=60)
def expire_stale_offers(self) -> int:
    try:
        return worker_loop().run_until_complete(_expire())
    except Exception as exc:
        logger.exception("expire_stale_offers failed")
        raise self.retry(exc=exc)
