"""Domain event publication.

Events are published after the transition has committed. A sink failure is
logged and dropped: the money movement already happened and must not be
reported as failed because a subscriber was unreachable.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from marketplace.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    name: str
    entity_type: str
    entity_id: int
    payload: dict = field(default_factory=dict)
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=str)


class EventSink(Protocol):
    async def publish(self, event: DomainEvent) -> None: ...


class RedisEventSink:
    """Publish events as JSON on a Redis pub/sub channel."""

    def __init__(self, channel: str | None = None) -> None:
        self.channel = channel or settings.event_channel

    async def publish(self, event: DomainEvent) -> None:
        from marketplace.core.redis import get_redis

        r = await get_redis()
        await r.publish(self.channel, event.to_json())


class MemoryEventSink:
    """Collects events in a list; handy in tests and local scripts."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]


_sink: EventSink | None = None


def get_event_sink() -> EventSink:
    global _sink
    if _sink is None:
        _sink = RedisEventSink()
    return _sink


def set_event_sink(sink: EventSink | None) -> None:
    global _sink
    _sink = sink


async def publish_event(
    name: str, entity_type: str, entity_id: int, **payload
) -> None:
    """Fire-and-forget publish.

    Bounded by ``event_publish_timeout_seconds``; a slow or failing sink is
    logged and the caller carries on.
    """
    event = DomainEvent(name=name, entity_type=entity_type, entity_id=entity_id, payload=payload)
    try:
        await asyncio.wait_for(
            get_event_sink().publish(event), timeout=settings.event_publish_timeout_seconds
        )
    except asyncio.TimeoutError:
        logger.warning(
            "Event %s for %s/%s dropped: sink timed out", name, entity_type, entity_id,
            extra={"timeout": settings.event_publish_timeout_seconds},
        )
    except Exception:
        logger.exception("Failed to publish event %s for %s/%s", name, entity_type, entity_id)
