# app/services/redis_client.py
"""
Redis client used by the booking service to remember idempotency keys.

Reads and reservations raise ``RedisStoreError`` instead of returning a
fallback value: if Redis cannot be consulted the booking must not proceed.
"""

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RedisStoreError(Exception):
    """Raised when Redis cannot answer a read or reservation."""

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation


class FastRedisClient:
    """Pooled async Redis client."""

    def __init__(self, url: str | None = None):
        self.url = url or settings.REDIS_URL
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            logger.info("Attempting Redis connection", url_preview=self.url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                self.url,
                max_connections=20,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            return bool(await self.client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def exists(self, key: str) -> bool:
        try:
            await self._ensure_initialized()
            return await self.client.exists(key) > 0
        except Exception as e:
            logger.error("Redis EXISTS failed", key=key[:30], error=str(e))
            raise RedisStoreError(f"Redis EXISTS failed: {e}", operation="exists") from e

    async def set_if_absent(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """SET NX; True when this call created the key."""
        try:
            await self._ensure_initialized()
            return bool(await self.client.set(key, value, nx=True, ex=ttl_s))
        except Exception as e:
            logger.error("Redis SET NX failed", key=key[:30], error=str(e))
            raise RedisStoreError(f"Redis SET NX failed: {e}", operation="set_if_absent") from e

    async def delete(self, key: str) -> bool:
        """Delete key - failures are logged, not raised"""
        try:
            await self._ensure_initialized()
            return await self.client.delete(key) > 0
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:30], error=str(e))
            return False


# Global instance
fast_redis = FastRedisClient()
