"""Redis pub/sub bridge so events raised in any process reach every API process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from src.config import settings
from src.modules.realtime.events import RealtimeEvent, realtime_event_adapter

if TYPE_CHECKING:
    from src.modules.realtime.hub import ConnectionHub

logger = logging.getLogger(__name__)


class RedisEventBridge:
    def __init__(
        self,
        redis_url: str,
        channel: str,
        reconnect_initial_seconds: float | None = None,
        reconnect_max_seconds: float | None = None,
    ) -> None:
        self.redis_url = redis_url
        self.channel = channel
        self.redis_client: redis.Redis | None = None
        self.reconnect_initial_seconds = (
            reconnect_initial_seconds
            if reconnect_initial_seconds is not None
            else settings.realtime_reconnect_initial_seconds
        )
        self.reconnect_max_seconds = (
            reconnect_max_seconds
            if reconnect_max_seconds is not None
            else settings.realtime_reconnect_max_seconds
        )

    async def connect(self) -> redis.Redis:
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.redis_url, encoding="utf-8", decode_responses=True
            )
            logger.info("Realtime bridge connected to %s", self.redis_url)
        return self.redis_client

    async def disconnect(self) -> None:
        if self.redis_client is not None:
            client, self.redis_client = self.redis_client, None
            with contextlib.suppress(RedisError, OSError):
                await client.aclose()

    async def publish(self, event: RealtimeEvent) -> None:
        client = await self.connect()
        await client.publish(self.channel, event.model_dump_json())

    async def listen(self, hub: ConnectionHub) -> None:
        """Deliver every bridged event to this process's sessions until cancelled.

        A dropped Redis connection is re-established with exponential backoff.
        """
        delay = self.reconnect_initial_seconds
        while True:
            try:
                async for _ in self._subscription(hub):
                    delay = self.reconnect_initial_seconds
            except (RedisError, OSError) as exc:
                logger.warning(
                    "Realtime bridge lost %s (%s); reconnecting in %.1fs",
                    self.channel, exc, delay,
                )
            else:
                logger.warning("Realtime bridge subscription to %s ended; reconnecting", self.channel)
            await self.disconnect()
            await asyncio.sleep(delay)
            delay = min(delay * 2, self.reconnect_max_seconds)

    async def _subscription(self, hub: ConnectionHub):
        """Yield once per delivered event for a single Redis subscription."""
        client = await self.connect()
        pubsub = client.pubsub()
        await pubsub.subscribe(self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    event = realtime_event_adapter.validate_json(message["data"])
                except ValidationError:
                    logger.warning("Ignoring malformed bridged event on %s", self.channel)
                    continue
                await hub.deliver(event)
                yield event
        finally:
            with contextlib.suppress(RedisError, OSError):
                await pubsub.unsubscribe(self.channel)
                await pubsub.aclose()
