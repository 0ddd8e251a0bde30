"""
User store: authoritative CRUD over user rows.

The store is the system of record. It alone decides existence and uniqueness;
the cache and session registry are derived from what it returns. Every public
method runs in its own unit of work under an enforced timeout and returns
detached UserRecord values, never ORM instances.
"""
import asyncio
import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement, Select

from models.user import LOCAL_LOGIN_PROVIDER, User, UserStatus
from schemas.user import (
    LookupField,
    UserCreate,
    UserQuery,
    UserRecord,
    UserStatistics,
)
from services.exceptions import (
    AlreadyExistsError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
)
from services.user_merge import merge_user_changes

logger = logging.getLogger(__name__)

EXTERNAL_LOGIN_PROVIDER = "external"

# Accounts created within this window count as "recent" in statistics
RECENT_USER_DAYS = 7

# Identity fields in the order conflicts are reported
UNIQUE_FIELDS = ("email", "username", "external_id")

# How each unique index shows up in driver error messages (PostgreSQL reports
# the index name, SQLite reports the index name or table.column)
_CONSTRAINT_MARKERS = {
    "email": ("uq_users_email_active", "users.email"),
    "username": ("uq_users_username_active", "users.username"),
    "external_id": ("uq_users_external_id_active", "users.external_id"),
}

_SORT_COLUMNS = {
    "username": func.lower(User.username),
    "email": func.lower(User.email),
    "full_name": User.full_name,
    "status": User.status,
    "created_at": User.created_at,
    "updated_at": User.updated_at,
    "last_login_at": User.last_login_at,
}


def _lookup_clause(field: LookupField, value: UUID | str) -> ColumnElement[bool]:
    """Build the WHERE clause for a lookup. Email and username are case-insensitive."""
    if field is LookupField.ID:
        return User.id == value
    if field is LookupField.EMAIL:
        return func.lower(User.email) == str(value).lower()
    if field is LookupField.USERNAME:
        return func.lower(User.username) == str(value).lower()
    return User.external_id == value


def _contains_pattern(text: str) -> str:
    """
    Build a LIKE pattern matching ``text`` anywhere, with wildcards taken literally.

    Use with escape="\\": PostgreSQL defaults to it, SQLite has no default.
    """
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _to_record(user: User) -> UserRecord:
    return UserRecord.model_validate(user)


class UserStore:
    """Async user repository over a SQLAlchemy session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout

    @asynccontextmanager
    async def _unit_of_work(self, operation: str) -> AsyncGenerator[AsyncSession]:
        """
        Yield a session inside a transaction, bounded by the store timeout.

        Commits when the block exits cleanly and rolls back otherwise. Timeouts
        and driver errors not handled inside the block become
        UnavailableError("store").
        """
        try:
            async with asyncio.timeout(self._timeout):
                async with self._session_factory() as session, session.begin():
                    yield session
        except TimeoutError as e:
            logger.warning(
                "user_store_timeout operation=%s timeout=%ss", operation, self._timeout,
            )
            raise UnavailableError("store", f"{operation} timed out") from e
        except (OperationalError, InterfaceError) as e:
            logger.warning("user_store_unavailable operation=%s error=%s", operation, e)
            raise UnavailableError("store", str(e.orig)) from e
        except DBAPIError as e:
            logger.error("user_store_driver_error operation=%s error=%s", operation, e)
            raise UnavailableError("store", str(e.orig)) from e
        except OSError as e:
            logger.warning("user_store_unavailable operation=%s error=%s", operation, e)
            raise UnavailableError("store", str(e)) from e

    # --- Lookups ---

    async def get_by(
        self,
        field: LookupField,
        value: UUID | str,
        include_deleted: bool = False,
    ) -> UserRecord | None:
        """
        Get a user by id or alias key.

        Args:
            field: Which key ``value`` is.
            value: The id or alias value.
            include_deleted: If True, soft-deleted rows are returned too.

        Returns:
            The user record, or None on a miss.
        """
        stmt = select(User).where(_lookup_clause(field, value))
        if not include_deleted:
            stmt = stmt.where(User.deleted_at.is_(None))
        async with self._unit_of_work(f"get_by_{field}") as session:
            user = (await session.execute(stmt)).scalar_one_or_none()
            return _to_record(user) if user is not None else None

    async def get_by_id(self, user_id: UUID, include_deleted: bool = False) -> UserRecord | None:
        """Get a user by primary id."""
        return await self.get_by(LookupField.ID, user_id, include_deleted)

    async def get_by_email(self, email: str, include_deleted: bool = False) -> UserRecord | None:
        """Get a user by email (case-insensitive)."""
        return await self.get_by(LookupField.EMAIL, email, include_deleted)

    async def get_by_username(
        self, username: str, include_deleted: bool = False,
    ) -> UserRecord | None:
        """Get a user by username (case-insensitive)."""
        return await self.get_by(LookupField.USERNAME, username, include_deleted)

    async def get_by_external_id(
        self, external_id: str, include_deleted: bool = False,
    ) -> UserRecord | None:
        """Get a user by external identity provider id."""
        return await self.get_by(LookupField.EXTERNAL_ID, external_id, include_deleted)

    async def _exists(
        self, field: LookupField, value: UUID | str, include_deleted: bool,
    ) -> bool:
        condition = _lookup_clause(field, value)
        if not include_deleted:
            condition = condition & User.deleted_at.is_(None)
        async with self._unit_of_work(f"exists_by_{field}") as session:
            return bool(await session.scalar(select(exists().where(condition))))

    async def exists_by_id(self, user_id: UUID, include_deleted: bool = False) -> bool:
        """Check whether a (live, unless include_deleted) row exists for ``user_id``."""
        return await self._exists(LookupField.ID, user_id, include_deleted)

    async def exists_by_email(self, email: str, include_deleted: bool = False) -> bool:
        """Check whether an email is taken (case-insensitive)."""
        return await self._exists(LookupField.EMAIL, email, include_deleted)

    async def exists_by_username(self, username: str, include_deleted: bool = False) -> bool:
        """Check whether a username is taken (case-insensitive)."""
        return await self._exists(LookupField.USERNAME, username, include_deleted)

    # --- Listing ---

    async def search(self, query: UserQuery) -> tuple[list[UserRecord], int]:
        """
        Filter, sort and paginate users.

        Args:
            query: Filter (status, search text, login provider, deleted view),
                pagination and sort options. Bounds are validated by the caller.

        Returns:
            Tuple of (records on the requested page, total matching count).
        """
        base_query = select(User)

        if query.deleted_only:
            base_query = base_query.where(User.deleted_at.is_not(None))
        elif not query.include_deleted:
            base_query = base_query.where(User.deleted_at.is_(None))

        if query.status is not None:
            base_query = base_query.where(User.status == query.status)
        if query.login_provider:
            base_query = base_query.where(
                func.lower(User.login_provider) == query.login_provider.lower(),
            )
        if query.search:
            pattern = _contains_pattern(query.search)
            base_query = base_query.where(
                or_(
                    User.username.ilike(pattern, escape="\\"),
                    User.email.ilike(pattern, escape="\\"),
                    User.full_name.ilike(pattern, escape="\\"),
                ),
            )

        count_query = select(func.count()).select_from(base_query.subquery())
        base_query = self._apply_sorting(base_query, query.sort_by, query.sort_order)
        base_query = base_query.offset(query.offset).limit(query.page_size)

        async with self._unit_of_work("search") as session:
            total = (await session.execute(count_query)).scalar() or 0
            users = (await session.execute(base_query)).scalars().all()
            return [_to_record(u) for u in users], total

    @staticmethod
    def _apply_sorting(stmt: Select, sort_by: str, sort_order: str) -> Select:
        """Order by the requested column, NULLs last, id as tiebreaker."""
        column = _SORT_COLUMNS[sort_by]
        if sort_order == "desc":
            return stmt.order_by(column.desc().nulls_last(), User.id.desc())
        return stmt.order_by(column.asc().nulls_last(), User.id.asc())

    async def _list(self, operation: str, *conditions: ColumnElement[bool]) -> list[UserRecord]:
        stmt = select(User).where(*conditions).order_by(User.created_at, User.id)
        async with self._unit_of_work(operation) as session:
            return [_to_record(u) for u in (await session.execute(stmt)).scalars().all()]

    async def list_all(self) -> list[UserRecord]:
        """All users, deleted included, oldest first."""
        return await self._list("list_all")

    async def list_active(self) -> list[UserRecord]:
        """All non-deleted users, oldest first."""
        return await self._list("list_active", User.deleted_at.is_(None))

    async def list_deleted(self) -> list[UserRecord]:
        """All soft-deleted users, oldest first."""
        return await self._list("list_deleted", User.deleted_at.is_not(None))

    # --- Mutations ---

    async def _find_conflict(
        self,
        session: AsyncSession,
        values: Mapping[str, Any],
        exclude_id: UUID | None = None,
    ) -> tuple[str, Any] | None:
        """
        Find the first unique field in ``values`` already held by another live user.

        Returns:
            (field, value) of the conflict, or None.
        """
        for field in UNIQUE_FIELDS:
            value = values.get(field)
            if value is None:
                continue
            condition = _lookup_clause(LookupField(field), value) & User.deleted_at.is_(None)
            if exclude_id is not None:
                condition = condition & (User.id != exclude_id)
            if await session.scalar(select(exists().where(condition))):
                return field, value
        return None

    @staticmethod
    def _conflict_from_integrity_error(
        error: IntegrityError, values: Mapping[str, Any],
    ) -> AlreadyExistsError:
        """
        Map a unique-index violation to the field it protects.

        Fallback for the race where a concurrent insert wins between our
        pre-check and our flush.
        """
        message = str(error.orig)
        for field, markers in _CONSTRAINT_MARKERS.items():
            if any(marker in message for marker in markers):
                return AlreadyExistsError(field, values.get(field))
        logger.error("user_store_unmapped_integrity_error error=%s", message)
        return AlreadyExistsError("id", values.get("id"))

    async def _load_for_update(self, session: AsyncSession, user_id: UUID) -> User | None:
        """Load a row (deleted or not) with a row lock where the dialect supports it."""
        result = await session.execute(
            select(User).where(User.id == user_id).with_for_update(),
        )
        return result.scalar_one_or_none()

    async def add(self, data: UserCreate) -> UserRecord:
        """
        Insert a new user.

        Args:
            data: Create payload, already validated.

        Returns:
            The persisted record, including database-assigned timestamps.

        Raises:
            AlreadyExistsError: If email, username or external_id belongs to a live user.
        """
        values = data.model_dump()
        if values["login_provider"] is None:
            values["login_provider"] = (
                LOCAL_LOGIN_PROVIDER if data.password_hash is not None
                else EXTERNAL_LOGIN_PROVIDER
            )

        async with self._unit_of_work("add") as session:
            conflict = await self._find_conflict(session, values)
            if conflict is not None:
                raise AlreadyExistsError(*conflict)

            user = User(**values)
            session.add(user)
            try:
                await session.flush()
            except IntegrityError as e:
                raise self._conflict_from_integrity_error(e, values) from e
            await session.refresh(user)
            record = _to_record(user)

        logger.info("user_created user_id=%s", record.id)
        return record

    async def update(
        self, user_id: UUID, changes: Mapping[str, Any],
    ) -> tuple[UserRecord, UserRecord]:
        """
        Merge ``changes`` onto a live user and persist.

        Args:
            user_id: The user to update.
            changes: Explicitly-set fields (see services.user_merge for per-field rules).

        Returns:
            Tuple of (record before the update, record after). Both are equal
            when nothing changed, in which case nothing is written.

        Raises:
            NotFoundError: If the user does not exist or is deleted.
            AlreadyExistsError: If a changed identity field is taken by another live user.
        """
        async with self._unit_of_work("update") as session:
            user = await self._load_for_update(session, user_id)
            if user is None or user.is_deleted:
                raise NotFoundError("user", user_id)
            before = _to_record(user)

            conflict = await self._find_conflict(session, changes, exclude_id=user.id)
            if conflict is not None:
                raise AlreadyExistsError(*conflict)

            changed = merge_user_changes(user, changes)
            if not changed:
                return before, before

            user.updated_at = func.now()
            try:
                await session.flush()
            except IntegrityError as e:
                raise self._conflict_from_integrity_error(e, changes) from e
            await session.refresh(user)
            after = _to_record(user)

        logger.info("user_updated user_id=%s fields=%s", user_id, ",".join(changed))
        return before, after

    async def soft_delete(self, user_id: UUID) -> tuple[UserRecord, bool]:
        """
        Soft-delete a user: set deleted_at and force status to BANNED.

        Idempotent in effect: deleting an already-deleted user changes nothing.

        Returns:
            Tuple of (current record, True if this call performed the delete).

        Raises:
            NotFoundError: If no row ever existed for ``user_id``.
        """
        async with self._unit_of_work("soft_delete") as session:
            user = await self._load_for_update(session, user_id)
            if user is None:
                raise NotFoundError("user", user_id)
            if user.is_deleted:
                return _to_record(user), False

            user.deleted_at = func.now()
            user.updated_at = func.now()
            user.status = UserStatus.BANNED
            await session.flush()
            await session.refresh(user)
            record = _to_record(user)

        logger.info("user_soft_deleted user_id=%s", user_id)
        return record, True

    async def restore(self, user_id: UUID) -> UserRecord:
        """
        Restore a soft-deleted user to ACTIVE.

        Raises:
            NotFoundError: If no row exists for ``user_id``.
            InvalidStateError: If the user is not deleted.
            AlreadyExistsError: If a live user has taken one of its identity keys meanwhile.
        """
        async with self._unit_of_work("restore") as session:
            user = await self._load_for_update(session, user_id)
            if user is None:
                raise NotFoundError("user", user_id)
            if not user.is_deleted:
                raise InvalidStateError("restore user", user.status.value)

            identity = {field: getattr(user, field) for field in UNIQUE_FIELDS}
            conflict = await self._find_conflict(session, identity, exclude_id=user.id)
            if conflict is not None:
                raise AlreadyExistsError(*conflict)

            user.deleted_at = None
            user.status = UserStatus.ACTIVE
            user.updated_at = func.now()
            try:
                await session.flush()
            except IntegrityError as e:
                raise self._conflict_from_integrity_error(e, identity) from e
            await session.refresh(user)
            record = _to_record(user)

        logger.info("user_restored user_id=%s", user_id)
        return record

    async def record_login(self, user_id: UUID, at: datetime | None = None) -> UserRecord:
        """
        Stamp last_login_at on a live user.

        Raises:
            NotFoundError: If the user does not exist or is deleted.
        """
        async with self._unit_of_work("record_login") as session:
            user = await self._load_for_update(session, user_id)
            if user is None or user.is_deleted:
                raise NotFoundError("user", user_id)
            user.last_login_at = at if at is not None else func.now()
            await session.flush()
            await session.refresh(user)
            return _to_record(user)

    async def statistics(self, now: datetime | None = None) -> UserStatistics:
        """
        Aggregate account counts.

        Args:
            now: Reference time for the "recent" window. Defaults to datetime.now(UTC).
        """
        if now is None:
            now = datetime.now(UTC)
        cutoff = now - timedelta(days=RECENT_USER_DAYS)
        is_deleted = User.deleted_at.is_not(None).label("is_deleted")

        grouped = (
            select(
                User.status,
                User.is_verified,
                User.login_provider,
                is_deleted,
                func.count().label("user_count"),
            )
            .group_by(User.status, User.is_verified, User.login_provider, is_deleted)
        )
        recent = select(func.count()).where(
            User.deleted_at.is_(None),
            User.created_at >= cutoff,
        )

        stats = UserStatistics()
        async with self._unit_of_work("statistics") as session:
            rows = (await session.execute(grouped)).all()
            stats.recent_users = (await session.execute(recent)).scalar() or 0

        status_attr = {
            UserStatus.ACTIVE: "active_users",
            UserStatus.INACTIVE: "inactive_users",
            UserStatus.SUSPENDED: "suspended_users",
            UserStatus.BANNED: "banned_users",
        }
        for row in rows:
            stats.total_users += row.user_count
            if row.is_deleted:
                stats.deleted_users += row.user_count
                continue
            attr = status_attr[row.status]
            setattr(stats, attr, getattr(stats, attr) + row.user_count)
            if row.is_verified:
                stats.verified_users += row.user_count
            else:
                stats.unverified_users += row.user_count
            providers = stats.users_by_login_provider
            providers[row.login_provider] = providers.get(row.login_provider, 0) + row.user_count
        return stats
