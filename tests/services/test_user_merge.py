"""Tests for field-level merging of update payloads."""
from datetime import UTC, datetime

import pytest

from models.user import User, UserStatus
from schemas.user import UserUpdate
from services.user_merge import merge_user_changes


@pytest.fixture
def user() -> User:
    """An unsaved user row with some optional fields populated."""
    return User(
        username="alice01",
        email="alice@example.com",
        password_hash="h",
        login_provider="local",
        status=UserStatus.ACTIVE,
        is_verified=False,
        bio="Hello",
        phone_number="+1 555 0100",
    )


class TestMergeUserChanges:
    """Tests for merge_user_changes."""

    def test__absent_fields__left_alone(self, user: User) -> None:
        """Fields not in the payload keep their value."""
        changes = UserUpdate(full_name="Alice Smith").model_dump(exclude_unset=True)

        changed = merge_user_changes(user, changes)

        assert changed == ["full_name"]
        assert user.full_name == "Alice Smith"
        assert user.bio == "Hello"
        assert user.email == "alice@example.com"

    def test__explicit_none__clears_optional_field(self, user: User) -> None:
        """An explicit None clears a clearable field."""
        changes = UserUpdate(bio=None).model_dump(exclude_unset=True)

        changed = merge_user_changes(user, changes)

        assert changed == ["bio"]
        assert user.bio is None

    def test__same_value__not_reported(self, user: User) -> None:
        """Setting a field to its current value is not a change."""
        changed = merge_user_changes(user, {"email": "alice@example.com", "is_verified": False})

        assert changed == []

    def test__immutable_fields__ignored(self, user: User) -> None:
        """Timestamps and deletion state never change through a merge."""
        stamp = datetime(2020, 1, 1, tzinfo=UTC)

        changed = merge_user_changes(
            user, {"created_at": stamp, "deleted_at": stamp, "last_login_at": stamp},
        )

        assert changed == []
        assert user.deleted_at is None
        assert user.last_login_at is None

    def test__required_field_none__raises(self, user: User) -> None:
        """Required fields cannot be cleared."""
        with pytest.raises(ValueError, match="username cannot be cleared"):
            merge_user_changes(user, {"username": None})

    def test__unknown_field__raises(self, user: User) -> None:
        """Fields that are not user attributes are rejected."""
        with pytest.raises(ValueError, match="Unknown user field"):
            merge_user_changes(user, {"nickname": "al"})

    def test__changed_fields__in_payload_order(self, user: User) -> None:
        """Changed names come back in payload order."""
        changed = merge_user_changes(
            user, {"status": UserStatus.SUSPENDED, "bio": "Bye", "is_verified": True},
        )

        assert changed == ["status", "bio", "is_verified"]
