"""Session registry: revocable bindings from credential id to user."""
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import ValidationError

from schemas.session import SessionMetadata, SessionRecord

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)

SESSION_SCHEMA_VERSION = 1

DEFAULT_TTL_SECONDS = 86_400  # 1 day


class SessionStore:
    """
    Redis-backed session registry.

    Each session is stored under its own key with a TTL matching its expiry.
    A per-user index set lists the session ids bound to a user so they can be
    revoked together.

    delete_all_for_user() is best effort: a session registered while the index
    is being drained can survive it. Security-sensitive checks must re-validate
    the user against the store rather than trusting a session's existence.
    """

    def __init__(self, redis_client: "RedisClient", ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        """Initialize session store with Redis client and maximum session TTL."""
        self._redis = redis_client
        self._ttl = ttl_seconds

    def _session_key(self, session_id: str) -> str:
        return f"sessions:v{SESSION_SCHEMA_VERSION}:{session_id}"

    def _user_index_key(self, user_id: UUID) -> str:
        return f"sessions:v{SESSION_SCHEMA_VERSION}:user:{user_id}"

    async def put(
        self,
        session_id: str,
        user_id: UUID,
        metadata: SessionMetadata | None = None,
        now: datetime | None = None,
    ) -> SessionRecord:
        """
        Register a session.

        Expiry defaults to issued_at + TTL and is capped at that bound.

        Returns:
            The stored record (also returned when Redis is unavailable, in
            which case nothing was registered).
        """
        metadata = metadata or SessionMetadata()
        if now is None:
            now = datetime.now(UTC)
        issued_at = metadata.issued_at or now
        max_expiry = issued_at + timedelta(seconds=self._ttl)
        expires_at = min(metadata.expires_at or max_expiry, max_expiry)
        record = SessionRecord(
            session_id=session_id,
            user_id=user_id,
            ip_address=metadata.ip_address,
            user_agent=metadata.user_agent,
            issued_at=issued_at,
            expires_at=expires_at,
        )

        ttl = int((expires_at - now).total_seconds())
        if ttl <= 0:
            logger.debug("session_put_skipped_expired session_id=%s", session_id)
            return record

        stored = await self._redis.setex(
            self._session_key(session_id), ttl, record.model_dump_json(),
        )
        index_key = self._user_index_key(user_id)
        await self._redis.sadd(index_key, session_id)
        await self._redis.expire(index_key, self._ttl)
        logger.debug("session_put user_id=%s stored=%s", user_id, stored)
        return record

    async def get(self, session_id: str, now: datetime | None = None) -> SessionRecord | None:
        """
        Get a session by id.

        Returns:
            The record, or None on a miss, after expiry, or when Redis is unavailable.
        """
        key = self._session_key(session_id)
        data = await self._redis.get(key)
        if not data:
            return None
        try:
            record = SessionRecord.model_validate_json(data)
        except ValidationError as e:
            logger.warning("session_undecodable session_id=%s error=%s", session_id, e)
            await self._redis.delete(key)
            return None
        if record.is_expired(now or datetime.now(UTC)):
            return None
        return record

    async def delete(self, session_id: str) -> bool:
        """
        Revoke one session.

        Returns:
            True if a session was registered under ``session_id`` and was removed.
        """
        key = self._session_key(session_id)
        data = await self._redis.get(key)
        if not data:
            return False
        try:
            record = SessionRecord.model_validate_json(data)
        except ValidationError:
            record = None
        await self._redis.delete(key)
        if record is not None:
            await self._redis.srem(self._user_index_key(record.user_id), session_id)
        return True

    async def delete_all_for_user(self, user_id: UUID) -> int:
        """
        Revoke every session bound to ``user_id``.

        Returns:
            Number of session ids found in the user's index (0 when Redis is unavailable).
        """
        index_key = self._user_index_key(user_id)
        session_ids = await self._redis.smembers(index_key)
        if not session_ids:
            await self._redis.delete(index_key)
            return 0
        keys = [self._session_key(sid) for sid in sorted(session_ids)]
        await self._redis.delete(*keys, index_key)
        logger.info("sessions_purged user_id=%s count=%s", user_id, len(keys))
        return len(keys)
