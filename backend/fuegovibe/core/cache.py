"""Redis-based cache for frequently accessed data."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

import redis
from redis.exceptions import ConnectionError, RedisError

from fuegovibe.core.config import settings

logger = logging.getLogger(__name__)


class InMemoryCache:
    """Fallback in-memory cache when Redis is unavailable."""

    def __init__(self):
        self._cache: dict[str, tuple[Any, Optional[float]]] = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            self._cache.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ex if ex else None
        self._cache[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()


def _connect(url: str) -> redis.Redis | InMemoryCache:
    try:
        pool = redis.ConnectionPool.from_url(
            url,
            max_connections=50,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)
        # Test connection
        client.ping()
        logger.info(f"Redis cache connected: {url}")
        return client
    except (ConnectionError, RedisError) as e:
        logger.warning(f"Failed to connect to Redis cache: {e}. Using fallback in-memory cache.")
        return InMemoryCache()


class RedisCache:
    """Redis-based cache with TTL support."""

    def __init__(self, default_ttl: int = 300, client: redis.Redis | InMemoryCache | None = None):
        """
        Initialize cache.

        Args:
            default_ttl: Default time-to-live in seconds (default: 5 minutes)
            client: Redis client to use; connects to REDIS_CACHE_URL when omitted
        """
        self.default_ttl = default_ttl
        self._client = client if client is not None else _connect(settings.REDIS_CACHE_URL)

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        try:
            if isinstance(self._client, InMemoryCache):
                return self._client.get(key)

            value = self._client.get(key)
            if value is None:
                return None

            # Try to deserialize JSON
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                # If not JSON, return as string
                return value
        except (ConnectionError, RedisError) as e:
            logger.warning(f"Redis cache get error for key {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set value in cache with TTL."""
        try:
            ttl = ttl or self.default_ttl

            if isinstance(self._client, InMemoryCache):
                self._client.set(key, value, ex=ttl)
                return

            # Serialize to JSON if needed
            if isinstance(value, (dict, list)):
                serialized = json.dumps(value)
            else:
                serialized = str(value)

            self._client.setex(key, ttl, serialized)
        except (ConnectionError, RedisError) as e:
            logger.warning(f"Redis cache set error for key {key}: {e}")

    def delete(self, key: str) -> None:
        """Delete key from cache."""
        try:
            self._client.delete(key)
        except (ConnectionError, RedisError) as e:
            logger.warning(f"Redis cache delete error for key {key}: {e}")


_cache: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get global cache instance, connecting on first use."""
    global _cache
    if _cache is None:
        _cache = RedisCache(default_ttl=300)  # 5 minutes default TTL
    return _cache
