# layer_receipts/services/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from layer_receipts.config import settings
from layer_receipts.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Pops every member of a sorted set whose score is <= ARGV[1], at most ARGV[2] of them.
_POP_DUE_SCRIPT = """
local items = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, ARGV[2])
if #items > 0 then
    redis.call('ZREM', KEYS[1], unpack(items))
end
return items
"""


class RedisClientError(Exception):
    """Raised when a Redis operation cannot be completed."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class RedisClient:
    """Pooled async Redis client shared by the snapshot store and the task queue"""

    def __init__(self, url: str | None = None, max_connections: int | None = None):
        self.url = url or settings.REDIS_URL
        self.max_connections = max_connections or settings.REDIS_MAX_CONNECTIONS
        self.pool = None
        self.client = None
        self._pop_due = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            logger.info("Attempting Redis connection", url_preview=self.url.split("@")[-1][:30])

            self.pool = ConnectionPool.from_url(
                self.url,
                max_connections=self.max_connections,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)
            self._pop_due = self.client.register_script(_POP_DUE_SCRIPT)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Redis client initialized", max_connections=self.max_connections)

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise RedisClientError("Redis initialization failed", operation="initialize") from e

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

    async def get(self, key: str) -> str | None:
        try:
            await self._ensure_initialized()
            return await self.client.get(key)
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis GET failed", key=key[:60], error=str(e))
            raise RedisClientError(f"GET failed: {e}", operation="get") from e

    async def set(
        self,
        key: str,
        value: str,
        only_if_exists: bool = False,
        only_if_missing: bool = False,
        ttl_seconds: int | None = None,
        keep_ttl: bool = False,
    ) -> bool:
        """SET with optional XX / NX, expiry or KEEPTTL; returns False when the condition blocked it"""
        try:
            await self._ensure_initialized()
            result = await self.client.set(
                key,
                value,
                xx=only_if_exists,
                nx=only_if_missing,
                ex=ttl_seconds,
                keepttl=keep_ttl,
            )
            return bool(result)
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis SET failed", key=key[:60], error=str(e))
            raise RedisClientError(f"SET failed: {e}", operation="set") from e

    async def exists(self, key: str) -> bool:
        try:
            await self._ensure_initialized()
            return await self.client.exists(key) > 0
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis EXISTS failed", key=key[:60], error=str(e))
            raise RedisClientError(f"EXISTS failed: {e}", operation="exists") from e

    async def persist(self, key: str) -> bool:
        """Drop the expiry of a key, if it has one."""
        try:
            await self._ensure_initialized()
            return bool(await self.client.persist(key))
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis PERSIST failed", key=key[:60], error=str(e))
            raise RedisClientError(f"PERSIST failed: {e}", operation="persist") from e

    async def delete(self, key: str) -> bool:
        try:
            await self._ensure_initialized()
            return await self.client.delete(key) > 0
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:60], error=str(e))
            raise RedisClientError(f"DELETE failed: {e}", operation="delete") from e

    async def getdel(self, key: str) -> str | None:
        """Atomically read and remove a key."""
        try:
            await self._ensure_initialized()
            return await self.client.getdel(key)
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis GETDEL failed", key=key[:60], error=str(e))
            raise RedisClientError(f"GETDEL failed: {e}", operation="getdel") from e

    async def add_scheduled(self, key: str, member: str, score: float) -> bool:
        """Add a member to a sorted set used as a delayed queue."""
        try:
            await self._ensure_initialized()
            return await self.client.zadd(key, {member: score}) > 0
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis ZADD failed", key=key[:60], error=str(e))
            raise RedisClientError(f"ZADD failed: {e}", operation="zadd") from e

    async def pop_due(self, key: str, max_score: float, limit: int) -> list[str]:
        """Atomically remove and return members whose score is due."""
        try:
            await self._ensure_initialized()
            items = await self._pop_due(keys=[key], args=[max_score, limit])
            return [str(item) for item in items] if items else []
        except RedisClientError:
            raise
        except Exception as e:
            logger.error("Redis due pop failed", key=key[:60], error=str(e))
            raise RedisClientError(f"due pop failed: {e}", operation="pop_due") from e


# Global instance
redis_client = RedisClient()
