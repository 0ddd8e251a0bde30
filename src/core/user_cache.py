"""Multi-key user cache for reduced database load."""
import logging
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import ValidationError

from schemas.user import LookupField, UserRecord

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)

# Cache schema version - included in all cache keys (e.g., "users:v1:id:...")
#
# Bump this version when UserRecord fields are added, removed, or renamed.
# Old "users:v1:..." entries are then never read and expire via TTL, which
# avoids any invalidation step during deployments.
CACHE_SCHEMA_VERSION = 1

DEFAULT_TTL_SECONDS = 300  # 5 minutes


class UserCache:
    """
    Read-through/write-through cache of user records.

    A user is reachable by its primary key (id) and by alias keys (email,
    username, external_id). Every key holds the same payload and all of a
    user's keys are written and evicted together.

    Built on RedisClient, so an unavailable Redis turns every read into a miss
    and every write into a no-op instead of an error.
    """

    def __init__(self, redis_client: "RedisClient", ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        """Initialize user cache with Redis client and entry TTL."""
        self._redis = redis_client
        self._ttl = ttl_seconds

    @property
    def ttl_seconds(self) -> int:
        """TTL applied to every entry on write."""
        return self._ttl

    def _cache_key(self, field: LookupField, value: UUID | str) -> str:
        """Generate cache key. Email and username keys are case-folded."""
        if field in (LookupField.EMAIL, LookupField.USERNAME):
            value = str(value).lower()
        name = "external" if field is LookupField.EXTERNAL_ID else field.value
        return f"users:v{CACHE_SCHEMA_VERSION}:{name}:{value}"

    def _keys_for(self, record: UserRecord) -> list[str]:
        """Primary key plus every alias key of ``record``."""
        keys = [
            self._cache_key(LookupField.ID, record.id),
            self._cache_key(LookupField.EMAIL, record.email),
            self._cache_key(LookupField.USERNAME, record.username),
        ]
        if record.external_id is not None:
            keys.append(self._cache_key(LookupField.EXTERNAL_ID, record.external_id))
        return keys

    async def _read(self, key: str) -> UserRecord | None:
        data = await self._redis.get(key)
        if not data:
            return None
        try:
            return UserRecord.model_validate_json(data)
        except ValidationError as e:
            # Corrupt or foreign payload: drop it and report a miss
            logger.warning("user_cache_undecodable key=%s error=%s", key, e)
            await self._redis.delete(key)
            return None

    async def get(self, field: LookupField, value: UUID | str) -> UserRecord | None:
        """
        Get a cached user by id or alias key.

        Returns:
            UserRecord on a hit, None on a miss or when Redis is unavailable.
        """
        record = await self._read(self._cache_key(field, value))
        if record is None:
            logger.debug("user_cache_miss field=%s", field)
        else:
            logger.debug("user_cache_hit field=%s user_id=%s", field, record.id)
        return record

    async def get_by_id(self, user_id: UUID) -> UserRecord | None:
        """Get cached user by primary id."""
        return await self.get(LookupField.ID, user_id)

    async def get_by_email(self, email: str) -> UserRecord | None:
        """Get cached user by email (case-insensitive)."""
        return await self.get(LookupField.EMAIL, email)

    async def get_by_username(self, username: str) -> UserRecord | None:
        """Get cached user by username (case-insensitive)."""
        return await self.get(LookupField.USERNAME, username)

    async def get_by_external_id(self, external_id: str) -> UserRecord | None:
        """Get cached user by external identity id."""
        return await self.get(LookupField.EXTERNAL_ID, external_id)

    async def put(self, record: UserRecord) -> bool:
        """
        Cache a user under its primary key and every alias key, refreshing TTL.

        Returns:
            True if every key was written, False if Redis was unavailable.
        """
        data = record.model_dump_json()
        written = True
        for key in self._keys_for(record):
            written = await self._redis.setex(key, self._ttl, data) and written
        logger.debug("user_cache_set user_id=%s written=%s", record.id, written)
        return written

    async def evict(self, user_id: UUID, *known: UserRecord) -> bool:
        """
        Evict a user's primary entry and every alias entry.

        Alias keys are taken from the cached primary payload and from any
        ``known`` versions of the user, so aliases of superseded versions (an
        old email after a rename) go too.

        Returns:
            True if the delete reached Redis, False if Redis was unavailable.
        """
        keys = {self._cache_key(LookupField.ID, user_id)}
        cached = await self._read(self._cache_key(LookupField.ID, user_id))
        for record in (cached, *known):
            if record is not None:
                keys.update(self._keys_for(record))
        deleted = await self._redis.delete(*sorted(keys))
        logger.debug("user_cache_evict user_id=%s keys=%s", user_id, len(keys))
        return deleted

    async def _evict_via(self, field: LookupField, value: UUID | str) -> bool:
        """Evict the whole family of the user cached under one key."""
        key = self._cache_key(field, value)
        record = await self._read(key)
        if record is None:
            return await self._redis.delete(key)
        await self._redis.delete(key)
        return await self.evict(record.id, record)

    async def evict_by_id(self, user_id: UUID) -> bool:
        """Evict by primary id (plus all aliases)."""
        return await self.evict(user_id)

    async def evict_by_email(self, email: str) -> bool:
        """Evict by email, including the primary entry and every other alias."""
        return await self._evict_via(LookupField.EMAIL, email)

    async def evict_by_username(self, username: str) -> bool:
        """Evict by username, including the primary entry and every other alias."""
        return await self._evict_via(LookupField.USERNAME, username)

    async def evict_by_external_id(self, external_id: str) -> bool:
        """Evict by external id, including the primary entry and every other alias."""
        return await self._evict_via(LookupField.EXTERNAL_ID, external_id)
