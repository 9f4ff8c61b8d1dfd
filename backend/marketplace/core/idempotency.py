"""Redis-based idempotency key guard for money-moving requests."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from marketplace.core.errors import ConcurrencyError
from marketplace.core.redis import get_redis

logger = logging.getLogger(__name__)


async def check_idempotency(key: str, ttl: int = 300) -> bool:
    """Return True if this is the first call with this key (proceed).

    Return False if a duplicate (skip). Redis being down must not block
    payments, so errors let the request through; the row locks and unique
    constraints still guard the data.
    """
    try:
        r = await get_redis()
        was_set = await r.set(f"idempotent:{key}", "1", nx=True, ex=ttl)
        return bool(was_set)
    except Exception:
        logger.exception("Idempotency check failed for key=%s, allowing through", key)
        return True


async def release_idempotency(key: str) -> None:
    """Forget ``key`` so the same request may be retried right away."""
    try:
        r = await get_redis()
        await r.delete(f"idempotent:{key}")
    except Exception:
        logger.exception("Could not release idempotency key=%s", key)


async def require_idempotency(key: str, ttl: int = 300) -> None:
    """Raise ConcurrencyError when ``key`` was already used within ``ttl``."""
    if not await check_idempotency(key, ttl):
        raise ConcurrencyError("Duplicate request, already being processed", code="duplicate_request")


@asynccontextmanager
async def idempotent(key: str, ttl: int = 300) -> AsyncIterator[None]:
    """Claim ``key`` for the body of the block.

    The key stays set only when the body succeeds: a request that was
    refused or failed releases it, so the caller's corrected retry is not
    reported as a duplicate.
    """
    await require_idempotency(key, ttl)
    try:
        yield
    except BaseException:
        await release_idempotency(key)
        raise
