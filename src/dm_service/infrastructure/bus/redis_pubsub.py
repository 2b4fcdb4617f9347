"""Redis Pub/Sub realtime bus: publish side and per-channel subscriptions."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from dm_service.application.exceptions import DependencyError
from dm_service.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 1.0
MAX_RECONNECT_DELAY_SECONDS = 30.0


class RedisSubscription:
    """Async iterator over ``(event_type, payload)`` for one channel.

    A dropped connection is re-established with exponential backoff; events
    published while disconnected are lost.
    """

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel
        self._pubsub: Any = None
        self._closed = False

    async def connect(self) -> None:
        try:
            pubsub = self._redis.pubsub()
            await pubsub.subscribe(self._channel)
        except (RedisError, OSError) as exc:
            raise DependencyError(f"Realtime bus unavailable: {exc}") from exc
        self._pubsub = pubsub
        logger.info("Subscribed to channel=%s", self._channel)

    async def close(self) -> None:
        self._closed = True
        await self._release()

    async def _release(self) -> None:
        if self._pubsub is None:
            return
        pubsub, self._pubsub = self._pubsub, None
        try:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
        except (RedisError, OSError):
            logger.debug("Error while closing pubsub for %s", self._channel, exc_info=True)

    async def _reconnect(self) -> None:
        delay = RECONNECT_DELAY_SECONDS
        while not self._closed:
            await self._release()
            try:
                await self.connect()
                return
            except DependencyError:
                logger.warning(
                    "Reconnect to channel=%s failed, retrying in %.0fs", self._channel, delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_RECONNECT_DELAY_SECONDS)

    def __aiter__(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        if self._pubsub is None and not self._closed:
            await self.connect()
        while not self._closed:
            try:
                async for message in self._pubsub.listen():
                    if message["type"] != "message":
                        continue
                    try:
                        yield deserialize_event(message["data"])
                    except ValueError:
                        logger.exception("Malformed event on channel=%s", self._channel)
                if self._closed:
                    return
            except asyncio.CancelledError:
                raise
            except (RedisError, OSError):
                if self._closed:
                    return
                logger.warning("Lost connection on channel=%s", self._channel, exc_info=True)
            await self._reconnect()


class RedisRealtimeBus:
    """Implements application.ports.bus.RealtimeBus."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(event_type, payload)
        try:
            await self._redis.publish(channel, raw)
        except (RedisError, OSError) as exc:
            raise DependencyError(f"Realtime bus unavailable: {exc}") from exc

    async def subscribe(self, channel: str) -> RedisSubscription:
        subscription = RedisSubscription(self._redis, channel)
        await subscription.connect()
        return subscription
