"""User model: the system-of-record row for an account."""
from datetime import date, datetime
from enum import StrEnum

from sqlalchemy import Boolean, Date, DateTime, Enum, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin, UUIDv7Mixin


class UserStatus(StrEnum):
    """
    Account status.

    ACTIVE, INACTIVE and SUSPENDED are the live states. BANNED is reserved for
    soft-deleted accounts; restore moves them back to ACTIVE.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BANNED = "banned"


LOCAL_LOGIN_PROVIDER = "local"


class User(Base, UUIDv7Mixin, TimestampMixin):
    """User account row. Validation lives in schemas.validators, not here."""

    __tablename__ = "users"

    # id provided by UUIDv7Mixin
    username: Mapped[str] = mapped_column(String(50))
    email: Mapped[str] = mapped_column(String(255))
    external_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Subject id at a third-party identity provider",
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Opaque credential material, only for local accounts",
    )
    login_provider: Mapped[str] = mapped_column(
        String(50),
        default=LOCAL_LOGIN_PROVIDER,
        server_default=LOCAL_LOGIN_PROVIDER,
    )
    status: Mapped[UserStatus] = mapped_column(
        Enum(
            UserStatus,
            name="user_status",
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=UserStatus.ACTIVE,
        index=True,
    )
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    full_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    address: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    profile_picture: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    @property
    def is_deleted(self) -> bool:
        """Check if the account is soft-deleted."""
        return self.deleted_at is not None


# Partial unique indexes: uniqueness is enforced among non-deleted rows only,
# so a username or email can be reused once its previous owner is deleted.
# Email and username compare case-insensitively.
_LIVE_ROWS = text("deleted_at IS NULL")

Index(
    "uq_users_email_active",
    func.lower(User.email),
    unique=True,
    postgresql_where=_LIVE_ROWS,
    sqlite_where=_LIVE_ROWS,
)
Index(
    "uq_users_username_active",
    func.lower(User.username),
    unique=True,
    postgresql_where=_LIVE_ROWS,
    sqlite_where=_LIVE_ROWS,
)
Index(
    "uq_users_external_id_active",
    User.external_id,
    unique=True,
    postgresql_where=_LIVE_ROWS,
    sqlite_where=_LIVE_ROWS,
)
