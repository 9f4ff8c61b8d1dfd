from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from marketplace.main import app
from marketplace.services.events import MemoryEventSink, set_event_sink
from marketplace.services.gateway.provider import set_gateway


@pytest.fixture(autouse=True)
def events():
    """Capture domain events in memory instead of publishing to Redis."""
    sink = MemoryEventSink()
    set_event_sink(sink)
    yield sink
    set_event_sink(None)
    set_gateway(None)


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client wired to the FastAPI app (no real server)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()
