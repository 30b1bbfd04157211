"""Redis client used by the Redis-backed change feed."""

import logging
from typing import AsyncIterator, Optional

import redis.asyncio as redis
from redis.asyncio.client import PubSub

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Thin async wrapper over a Redis connection pool for pub/sub."""

    def __init__(self, settings: Optional[Settings] = None, connection: Optional[redis.Redis] = None):
        self.settings = settings or get_settings()
        self.redis: Optional[redis.Redis] = connection

    async def connect(self) -> None:
        """Connect to Redis."""
        if self.redis is None:
            self.redis = redis.from_url(
                self.settings.redis_url,
                max_connections=self.settings.redis_max_connections,
                decode_responses=True,
            )
        try:
            await self.redis.ping()
            logger.info("Connected to Redis successfully")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("Disconnected from Redis")

    async def ping(self) -> bool:
        if not self.redis:
            return False
        return bool(await self.redis.ping())

    async def publish(self, channel: str, message: str) -> int:
        """Publish a message; returns the number of receiving subscribers."""
        if not self.redis:
            raise RuntimeError("Redis client is not connected")
        return await self.redis.publish(channel, message)

    async def subscribe(self, channel: str) -> PubSub:
        """Subscribe to ``channel``; messages published from now on are buffered."""
        if not self.redis:
            raise RuntimeError("Redis client is not connected")
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(channel)
        return pubsub

    async def listen(self, pubsub: PubSub) -> AsyncIterator[str]:
        """Yield message payloads from a subscription until cancelled or the connection fails."""
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    yield message["data"]
        finally:
            await pubsub.unsubscribe()
            await pubsub.aclose()
