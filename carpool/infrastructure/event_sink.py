"""
Event sinks -- where dispatched lifecycle events go.

The notification system consumes the Redis stream; delivery (email,
push) is its concern.  Delivery is at-least-once, so consumers must
de-duplicate on the ``event_id`` field.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as aioredis

from carpool.config import settings

logger = logging.getLogger(__name__)


class EventSink(ABC):
    @abstractmethod
    async def emit(self, event_type: str, payload: dict[str, Any]) -> None: ...


class RedisStreamEventSink(EventSink):
    def __init__(self, client: aioredis.Redis, stream_key: str, maxlen: int = 100_000):
        self.redis = client
        self.stream_key = stream_key
        self.maxlen = maxlen

    async def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        await self.redis.xadd(
            self.stream_key,
            {"type": event_type, "payload": json.dumps(payload, default=str)},
            maxlen=self.maxlen,
            approximate=True,
        )


class LoggingEventSink(EventSink):
    async def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info("event %s %s", event_type, json.dumps(payload, default=str))


def build_event_sink(client: aioredis.Redis | None = None) -> EventSink:
    if settings.event_sink == "log" or client is None:
        return LoggingEventSink()
    return RedisStreamEventSink(client, settings.event_stream_key)
