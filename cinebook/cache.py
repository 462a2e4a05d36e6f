"""
Redis cache for catalog reference data.

Only read-mostly reference data (screenings, concessions) is cached. Seat
availability is never cached; the seat rows are the only authority on it.
"""

import json
import logging
from typing import Any, Optional
from uuid import UUID

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError
from redis.exceptions import ConnectionError as RedisConnectionError

from .config import Settings, get_settings

logger = logging.getLogger(__name__)


class CacheKeyBuilder:
    """Helper class for building consistent cache keys."""

    @staticmethod
    def screening(screening_id: UUID) -> str:
        """Build cache key for a screening snapshot."""
        return f"catalog:screening:{screening_id}"

    @staticmethod
    def concession(concession_id: UUID) -> str:
        """Build cache key for a concession snapshot."""
        return f"catalog:concession:{concession_id}"

    @staticmethod
    def available_concessions() -> str:
        """Build cache key for the available concession list."""
        return "catalog:concessions:available"


class RedisCache:
    """Redis cache manager with connection handling and operations."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client: Optional[Redis] = None
        self.pool: Optional[redis.ConnectionPool] = None

    @property
    def default_ttl(self) -> int:
        return self.settings.catalog_cache_ttl_seconds

    async def initialize(self) -> None:
        """Initialize Redis connection pool and client."""
        try:
            self.pool = redis.ConnectionPool.from_url(
                self.settings.redis_url,
                max_connections=self.settings.redis_max_connections,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client = Redis(connection_pool=self.pool)

            await self.client.ping()
            logger.info("Redis cache initialized successfully")

        except RedisConnectionError as e:
            logger.error(f"Failed to connect to Redis at {self.settings.redis_url}: {e}")
            raise

    async def close(self) -> None:
        """Close Redis connections."""
        if self.client:
            await self.client.aclose()
        if self.pool:
            await self.pool.disconnect()
        self.client = None
        self.pool = None
        logger.info("Redis cache connections closed")

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found or Redis is unreachable
        """
        if not self.client:
            return None

        try:
            value = await self.client.get(key)
            if value:
                return json.loads(value.decode("utf-8"))
            return None
        except (RedisError, ValueError) as e:
            logger.warning(f"Catalog cache read failed for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: JSON-serialisable value
            ttl: Time to live in seconds (defaults to the catalog TTL)

        Returns:
            True if successful, False otherwise
        """
        if not self.client:
            return False

        try:
            serialized_value = json.dumps(value, default=str)
            await self.client.setex(key, ttl or self.default_ttl, serialized_value)
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"Catalog cache write failed for {key}: {e}")
            return False

    async def delete(self, *keys: str) -> bool:
        """
        Delete keys from cache.

        Returns:
            True if successful, False otherwise
        """
        if not self.client or not keys:
            return False

        try:
            await self.client.delete(*keys)
            return True
        except RedisError as e:
            logger.warning(f"Catalog cache invalidation failed for {list(keys)}: {e}")
            return False
