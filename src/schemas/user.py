"""Pydantic schemas for user directory operations."""
import math
from datetime import date, datetime
from enum import StrEnum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.user import UserStatus


class UserRecord(BaseModel):
    """
    Detached, serializable view of a user row.

    This is the payload returned to callers and stored in the user cache, so a
    cached read and a store read of the same row compare equal.

    IMPORTANT: When adding, removing, or renaming fields, bump
    CACHE_SCHEMA_VERSION in core/user_cache.py so entries written with the old
    shape are ignored and expire via TTL.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    email: str
    external_id: str | None = None
    password_hash: str | None = Field(default=None, repr=False)
    login_provider: str
    status: UserStatus
    is_verified: bool
    full_name: str | None = None
    phone_number: str | None = None
    date_of_birth: date | None = None
    address: str | None = None
    bio: str | None = None
    profile_picture: str | None = Field(default=None, repr=False)
    created_at: datetime
    updated_at: datetime | None = None
    last_login_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        """Check if the account is soft-deleted."""
        return self.deleted_at is not None


class UserCreate(BaseModel):
    """Fields accepted when creating a user."""

    username: str
    email: str
    password_hash: str | None = Field(default=None, repr=False)
    external_id: str | None = None
    login_provider: str | None = None  # Derived from password_hash/external_id when omitted
    status: UserStatus = UserStatus.ACTIVE
    is_verified: bool = False
    full_name: str | None = None
    phone_number: str | None = None
    date_of_birth: date | None = None
    address: str | None = None
    bio: str | None = None
    profile_picture: str | None = Field(default=None, repr=False)


class UserUpdate(BaseModel):
    """
    Partial update payload.

    Only fields explicitly set are applied (model_dump(exclude_unset=True)).
    Setting an optional field to None clears it; leaving it out keeps it.
    """

    username: str | None = None
    email: str | None = None
    external_id: str | None = None
    password_hash: str | None = Field(default=None, repr=False)
    login_provider: str | None = None
    status: UserStatus | None = None
    is_verified: bool | None = None
    full_name: str | None = None
    phone_number: str | None = None
    date_of_birth: date | None = None
    address: str | None = None
    bio: str | None = None
    profile_picture: str | None = Field(default=None, repr=False)


UserSortField = Literal[
    "username", "email", "full_name", "status", "created_at", "updated_at", "last_login_at",
]


class UserQuery(BaseModel):
    """Filter, pagination and sort options for listing users."""

    page: int = 1
    page_size: int = 10
    search: str | None = None
    status: UserStatus | None = None
    login_provider: str | None = None
    include_deleted: bool = False
    deleted_only: bool = False
    sort_by: UserSortField = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"

    @property
    def offset(self) -> int:
        """Row offset of the requested page."""
        return (self.page - 1) * self.page_size


class UserPage(BaseModel):
    """One page of users plus the total count matching the filter."""

    items: list[UserRecord]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        """Number of pages needed for ``total`` rows."""
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)


class UserStatistics(BaseModel):
    """Aggregate account counts. Status and verification counts cover live accounts only."""

    total_users: int = 0
    active_users: int = 0
    inactive_users: int = 0
    suspended_users: int = 0
    banned_users: int = 0
    verified_users: int = 0
    unverified_users: int = 0
    deleted_users: int = 0
    recent_users: int = 0
    users_by_login_provider: dict[str, int] = Field(default_factory=dict)


class LookupField(StrEnum):
    """Keys a user can be looked up by: the primary id plus the alias keys."""

    ID = "id"
    EMAIL = "email"
    USERNAME = "username"
    EXTERNAL_ID = "external_id"
