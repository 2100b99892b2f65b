"""
Redis Change Feed

Publishes change events on Redis pub/sub so that every API process
(and the Celery workers) sees the same stream. A background listener
task pattern-subscribes to all change channels and dispatches received
events to local subscribers.

Channel layout:
    <prefix>:changes:<table>

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from gestro.core.config import get_settings
from gestro.services.realtime.base import BaseChangeFeed, ChangeEvent

logger = logging.getLogger(__name__)


class RedisChangeFeed(BaseChangeFeed):
    """Cross-process change feed backed by Redis pub/sub."""

    def __init__(self, redis_url: Optional[str] = None, prefix: Optional[str] = None):
        super().__init__()
        settings = get_settings()
        self._prefix = prefix or settings.realtime_channel_prefix
        self._client = aioredis.from_url(redis_url or settings.redis_url, decode_responses=True)
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None
        logger.info(f"RedisChangeFeed initialized (prefix={self._prefix})")

    @property
    def provider_name(self) -> str:
        return "redis"

    def _channel(self, table: str) -> str:
        return f"{self._prefix}:changes:{table}"

    async def publish(self, event: ChangeEvent) -> None:
        payload = json.dumps(event.to_dict(), default=str)
        try:
            receivers = await self._client.publish(self._channel(event.table), payload)
            logger.debug(f"Redis feed: {event.table}:{event.event_type.value} -> {receivers} receiver(s)")
        except RedisError as e:
            logger.error(f"Redis feed publish failed for {event.table}: {e}")

    async def start(self) -> None:
        if self._listener is not None:
            return
        self._pubsub = self._client.pubsub()
        await self._pubsub.psubscribe(self._channel("*"))
        self._listener = asyncio.create_task(self._listen())
        logger.info("Redis feed listener started")

    async def _listen(self) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "pmessage":
                continue
            try:
                event = ChangeEvent.from_dict(json.loads(message["data"]))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Redis feed: dropping malformed event - {e}")
                continue
            await self._dispatch(event)

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.punsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None
        await self._client.aclose()
        logger.info("Redis feed stopped")

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.error(f"Redis feed health check failed: {e}")
            return False
