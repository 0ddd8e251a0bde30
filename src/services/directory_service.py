"""
Directory service: the cache-coherent front door to the user directory.

Sequencing rules:

- Reads consult the cache first, fall back to the store on a miss and then
  repopulate the cache.
- Writes go to the store first, then the cache.
- Deletes go to the store, then evict the cache, then purge sessions, so no
  backend keeps advertising a user the store no longer has.

The store decides existence and uniqueness; cache state is never trusted for
either. Cache and session failures are absorbed by RedisClient (logged, treated
as miss/no-op), so the directory keeps working store-only when Redis is down.
Store failures propagate as the typed errors in services.exceptions.
"""
import logging
from uuid import UUID

from core.session_store import SessionStore
from core.user_cache import UserCache
from models.user import UserStatus
from schemas.session import SessionMetadata, SessionRecord
from schemas.user import (
    LookupField,
    UserCreate,
    UserPage,
    UserQuery,
    UserRecord,
    UserStatistics,
    UserUpdate,
)
from schemas.validators import (
    ValidationResult,
    validate_new_user,
    validate_user_changes,
    validate_user_query,
)
from services.exceptions import (
    FieldValidationError,
    InvalidStateError,
    NotFoundError,
)
from services.user_store import UserStore

logger = logging.getLogger(__name__)


def _raise_if_invalid(result: ValidationResult) -> None:
    if not result.ok:
        raise FieldValidationError(result.issues)


def _matches(record: UserRecord, field: LookupField, value: UUID | str) -> bool:
    """Check that ``record`` is still addressed by ``value`` under ``field``."""
    current = getattr(record, field.value)
    if current is None:
        return False
    if field in (LookupField.EMAIL, LookupField.USERNAME):
        return current.lower() == str(value).lower()
    return current == value


class DirectoryService:
    """
    Orchestrates UserStore, UserCache and SessionStore.

    Holds no mutable state of its own; every handle is constructed at startup
    (see core.lifespan) and passed in.
    """

    def __init__(
        self,
        store: UserStore,
        cache: UserCache,
        sessions: SessionStore,
        verify_cache_hits: bool = True,
    ) -> None:
        self._store = store
        self._cache = cache
        self._sessions = sessions
        self._verify_cache_hits = verify_cache_hits

    # --- Create ---

    async def create_user(self, data: UserCreate) -> UserRecord:
        """
        Create a user, persist it, then cache it.

        Raises:
            FieldValidationError: If a field is malformed.
            AlreadyExistsError: If email, username or external_id is taken by a live user.
            UnavailableError: If the store cannot be reached.
        """
        _raise_if_invalid(validate_new_user(data.model_dump()))
        record = await self._store.add(data)
        await self._cache.put(record)
        return record

    # --- Lookups ---

    async def _lookup(
        self, field: LookupField, value: UUID | str, sensitive: bool,
    ) -> UserRecord:
        """
        Cache-first lookup that never returns a payload whose row is gone.

        Args:
            field: Key type of ``value``.
            value: The id or alias value.
            sensitive: True for authentication/authorization decisions. The
                cached payload is then re-read from the store before use.
        """
        cached = await self._cache.get(field, value)
        if cached is not None:
            if sensitive:
                current = await self._store.get_by_id(cached.id)
                if current is None:
                    await self._evict_stale(cached, field)
                elif current == cached:
                    return current
                else:
                    await self._cache.evict(current.id, cached)
                    if _matches(current, field, value):
                        await self._cache.put(current)
                        return current
            elif not self._verify_cache_hits:
                return cached
            elif await self._store.exists_by_id(cached.id):
                return cached
            else:
                await self._evict_stale(cached, field)
            # The cached row is gone or no longer owns the key; another live
            # row may hold it now, so the store decides

        record = await self._store.get_by(field, value)
        if record is None:
            raise NotFoundError("user", value)
        await self._cache.put(record)
        return record

    async def _evict_stale(self, cached: UserRecord, field: LookupField) -> None:
        logger.info(
            "user_cache_stale_evicted user_id=%s via=%s", cached.id, field,
        )
        await self._cache.evict(cached.id, cached)

    async def get_by_id(self, user_id: UUID, sensitive: bool = False) -> UserRecord:
        """
        Get a live user by id.

        Raises:
            NotFoundError: If the user does not exist or is deleted.
            UnavailableError: If the store cannot be reached.
        """
        return await self._lookup(LookupField.ID, user_id, sensitive)

    async def get_by_email(self, email: str, sensitive: bool = False) -> UserRecord:
        """Get a live user by email (case-insensitive)."""
        return await self._lookup(LookupField.EMAIL, email, sensitive)

    async def get_by_username(self, username: str, sensitive: bool = False) -> UserRecord:
        """Get a live user by username (case-insensitive)."""
        return await self._lookup(LookupField.USERNAME, username, sensitive)

    async def get_by_external_id(self, external_id: str, sensitive: bool = False) -> UserRecord:
        """Get a live user by external identity id."""
        return await self._lookup(LookupField.EXTERNAL_ID, external_id, sensitive)

    # --- Mutations ---

    async def update_user(self, user_id: UUID, data: UserUpdate) -> UserRecord:
        """
        Merge the explicitly-set fields of ``data`` onto the stored row.

        The current row is read from the store, never the cache. After the
        write, every alias of the previous version is evicted and the new
        version cached.

        Raises:
            FieldValidationError: If a supplied field is malformed.
            NotFoundError: If the user does not exist or is deleted.
            AlreadyExistsError: If a changed identity field is taken.
        """
        changes = data.model_dump(exclude_unset=True)
        _raise_if_invalid(validate_user_changes(changes))
        before, after = await self._store.update(user_id, changes)
        if after != before:
            await self._cache.evict(user_id, before)
        await self._cache.put(after)
        return after

    async def delete_user(self, user_id: UUID) -> None:
        """
        Soft-delete a user, evict its cache entries, then purge its sessions.

        Deleting an already-deleted user repeats the (harmless) cleanup and
        raises NotFoundError, leaving the store unchanged.

        Raises:
            NotFoundError: If the user never existed or is already deleted.
        """
        record, newly_deleted = await self._store.soft_delete(user_id)
        await self._cache.evict(user_id, record)
        purged = await self._sessions.delete_all_for_user(user_id)
        if not newly_deleted:
            raise NotFoundError("user", user_id)
        logger.info("user_deleted user_id=%s sessions_purged=%s", user_id, purged)

    async def restore_user(self, user_id: UUID) -> UserRecord:
        """
        Restore a soft-deleted user to ACTIVE. Sessions are not resurrected.

        Raises:
            NotFoundError: If the user does not exist.
            InvalidStateError: If the user is not deleted.
            AlreadyExistsError: If a live user took one of its identity keys.
        """
        record = await self._store.restore(user_id)
        await self._cache.put(record)
        return record

    # --- Listing ---

    async def list_users(self, query: UserQuery | None = None) -> UserPage:
        """
        List users straight from the store. The cache is never consulted.

        Raises:
            FieldValidationError: If pagination bounds are invalid.
        """
        query = query or UserQuery()
        _raise_if_invalid(validate_user_query(query.page, query.page_size))
        items, total = await self._store.search(query)
        return UserPage(items=items, total=total, page=query.page, page_size=query.page_size)

    async def get_statistics(self) -> UserStatistics:
        """Aggregate account counts from the store."""
        return await self._store.statistics()

    # --- Sessions ---

    async def open_session(
        self,
        user_id: UUID,
        session_id: str,
        metadata: SessionMetadata | None = None,
    ) -> SessionRecord:
        """
        Register a session for a live, active user and record the login.

        The user is checked against the store, never the cache, so a session
        can only be bound to a user that exists at the time of creation.

        Raises:
            NotFoundError: If the user does not exist or is deleted.
            InvalidStateError: If the user is not ACTIVE.
        """
        user = await self.get_by_id(user_id, sensitive=True)
        if user.status != UserStatus.ACTIVE:
            raise InvalidStateError("open session", user.status.value)
        user = await self._store.record_login(user_id)
        await self._cache.put(user)
        return await self._sessions.put(session_id, user_id, metadata)

    async def resolve_session(
        self, session_id: str, sensitive: bool = True,
    ) -> tuple[SessionRecord, UserRecord]:
        """
        Resolve a session to its user.

        Session existence alone is not trusted: the user is re-validated
        (against the store when ``sensitive``). A session whose user is gone
        is revoked on the spot.

        Raises:
            NotFoundError: If the session is unknown/expired or its user is gone.
            InvalidStateError: If the user is not ACTIVE.
        """
        session = await self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("session", session_id)
        try:
            user = await self.get_by_id(session.user_id, sensitive=sensitive)
        except NotFoundError:
            await self._sessions.delete(session_id)
            logger.info(
                "session_revoked_orphan session_id=%s user_id=%s", session_id, session.user_id,
            )
            raise NotFoundError("session", session_id) from None
        if user.status != UserStatus.ACTIVE:
            raise InvalidStateError("resolve session", user.status.value)
        return session, user

    async def close_session(self, session_id: str) -> bool:
        """Revoke one session. Returns False if it was not registered."""
        return await self._sessions.delete(session_id)
