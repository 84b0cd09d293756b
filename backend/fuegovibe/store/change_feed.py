"""
Redis Pub/Sub change feed.
Announces collection changes so every process can refresh its subscriptions.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, List, Optional

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from fuegovibe.core.config import settings

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[str], Awaitable[None]]


class RedisChangeFeed:
    """Redis Pub/Sub fan-out of document collection changes."""

    def __init__(self, url: Optional[str] = None, channel: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self.channel = channel or settings.CHANGE_FEED_CHANNEL
        self.redis: Optional[aioredis.Redis] = None
        self.pubsub: Optional[PubSub] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._handlers: List[ChangeHandler] = []

    @property
    def connected(self) -> bool:
        return self.redis is not None

    def add_handler(self, handler: ChangeHandler) -> None:
        self._handlers.append(handler)

    async def connect(self):
        """Connect to Redis and subscribe to the change channel."""
        try:
            self.redis = await aioredis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True
            )
            self.pubsub = self.redis.pubsub()
            await self.pubsub.subscribe(self.channel)

            logger.info(f"Change feed connected and subscribed to '{self.channel}' channel")

            self._listener_task = asyncio.create_task(self._listen())

        except Exception as e:
            logger.error(f"Failed to connect change feed to Redis: {e}")
            self.redis = None
            self.pubsub = None
            raise

    async def disconnect(self):
        """Disconnect from Redis Pub/Sub."""
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass
            self._listener_task = None

        if self.pubsub:
            await self.pubsub.unsubscribe(self.channel)
            await self.pubsub.aclose()
            self.pubsub = None

        if self.redis:
            await self.redis.aclose()
            self.redis = None

        logger.info("Change feed disconnected")

    async def _listen(self):
        """Dispatch change announcements to the registered handlers."""
        logger.info("Starting change feed listener...")

        try:
            async for message in self.pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    data = json.loads(message["data"])
                    await self.dispatch(data["collection"])
                except Exception as e:
                    logger.error(f"Error processing change message: {e}", exc_info=True)

        except asyncio.CancelledError:
            logger.info("Change feed listener cancelled")
        except Exception as e:
            logger.error(f"Change feed listener error: {e}", exc_info=True)

    async def dispatch(self, collection: str) -> None:
        for handler in list(self._handlers):
            await handler(collection)

    async def publish(self, collection: str) -> bool:
        """Announce a change; returns False when the announcement could not be sent."""
        if not self.redis:
            logger.warning("Redis not connected, cannot publish change")
            return False

        try:
            await self.redis.publish(self.channel, json.dumps({"collection": collection}))
            logger.debug(f"Published change for collection {collection}")
            return True
        except Exception as e:
            logger.error(f"Error publishing to Redis: {e}")
            return False
