"""Tests for the shared Redis client settings."""

from unittest.mock import MagicMock, patch

import pytest

from marketplace.core import redis as redis_module
from marketplace.core.config import settings


@pytest.mark.asyncio
async def test_client_uses_bounded_socket_timeouts(monkeypatch):
    monkeypatch.setattr(redis_module, "_redis", None)
    with patch.object(redis_module.aioredis, "from_url", MagicMock()) as from_url:
        await redis_module.get_redis()
    kwargs = from_url.call_args.kwargs
    assert kwargs["socket_timeout"] == settings.redis_socket_timeout_seconds
    assert kwargs["socket_connect_timeout"] == settings.redis_socket_timeout_seconds
