"""Redis client with connection pooling, per-call timeouts and graceful fallback."""
import asyncio
import logging

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Async Redis client with connection pooling and graceful fallback.

    Every command runs under ``timeout`` seconds. Connection errors, command
    errors and timeouts are logged and reported as a miss (``None``) or a
    failed write (``False``); they never propagate to callers. Both the user
    cache and the session registry rely on this: Redis is an accelerator, not
    a dependency.
    """

    def __init__(
        self,
        url: str,
        enabled: bool = True,
        pool_size: int = 20,
        timeout: float = 0.5,
        client: Redis | None = None,
    ) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._timeout = timeout
        self._pool: ConnectionPool | None = None
        # A pre-built client (e.g. one sharing an existing pool) skips connect()
        self._client: Redis | None = client if enabled else None

    async def connect(self) -> None:
        """Initialize connection pool and verify connectivity."""
        if not self._enabled:
            logger.info("Redis disabled by configuration")
            return
        if self._client is not None:
            return
        try:
            self._pool = ConnectionPool.from_url(
                self._url,
                max_connections=self._pool_size,
                socket_timeout=self._timeout,
                socket_connect_timeout=self._timeout,
            )
            self._client = Redis(connection_pool=self._pool)
            async with asyncio.timeout(self._timeout):
                await self._client.ping()
            logger.info("Redis connected successfully")
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis connection failed: %s", e)
            if self._client is not None:
                await self._client.aclose()
            self._client = None
            self._pool = None

    async def close(self) -> None:
        """Close connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._pool = None
            logger.info("Redis connection closed")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        if not self._client:
            return False
        try:
            async with asyncio.timeout(self._timeout):
                return await self._client.ping()
        except (RedisError, TimeoutError):
            return False

    async def get(self, key: str) -> bytes | None:
        """Get value, returns None if Redis unavailable."""
        if not self._client:
            return None
        try:
            async with asyncio.timeout(self._timeout):
                return await self._client.get(key)
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis GET failed: %s", e)
            return None

    async def setex(self, key: str, seconds: int, value: str | bytes) -> bool:
        """Set value with expiry, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            async with asyncio.timeout(self._timeout):
                await self._client.setex(key, seconds, value)
            return True
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis SETEX failed: %s", e)
            return False

    async def delete(self, *keys: str) -> bool:
        """Delete key(s), returns False if Redis unavailable."""
        if not self._client:
            return False
        if not keys:
            return True
        try:
            async with asyncio.timeout(self._timeout):
                await self._client.delete(*keys)
            return True
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis DELETE failed: %s", e)
            return False

    async def sadd(self, key: str, *members: str) -> bool:
        """Add members to a set, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            async with asyncio.timeout(self._timeout):
                await self._client.sadd(key, *members)
            return True
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis SADD failed: %s", e)
            return False

    async def srem(self, key: str, *members: str) -> bool:
        """Remove members from a set, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            async with asyncio.timeout(self._timeout):
                await self._client.srem(key, *members)
            return True
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis SREM failed: %s", e)
            return False

    async def smembers(self, key: str) -> set[str] | None:
        """Get set members as strings, returns None if Redis unavailable."""
        if not self._client:
            return None
        try:
            async with asyncio.timeout(self._timeout):
                members = await self._client.smembers(key)
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis SMEMBERS failed: %s", e)
            return None
        return {m.decode() if isinstance(m, bytes) else m for m in members}

    async def expire(self, key: str, seconds: int) -> bool:
        """Set key expiry, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            async with asyncio.timeout(self._timeout):
                await self._client.expire(key, seconds)
            return True
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis EXPIRE failed: %s", e)
            return False

    async def flushdb(self) -> bool:
        """Flush current database (for testing). Returns False if unavailable."""
        if not self._client:
            return False
        try:
            async with asyncio.timeout(self._timeout):
                await self._client.flushdb()
            return True
        except (RedisError, TimeoutError) as e:
            logger.warning("Redis FLUSHDB failed: %s", e)
            return False
