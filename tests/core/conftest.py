"""Fixtures for cache and session registry tests."""
from collections.abc import Callable
from datetime import UTC, datetime

import pytest
from uuid6 import uuid7

from models.user import UserStatus
from schemas.user import UserRecord


@pytest.fixture
def make_record() -> Callable[..., UserRecord]:
    """Factory for standalone user records; keyword arguments override defaults."""

    def _make(**overrides: object) -> UserRecord:
        values: dict[str, object] = {
            "id": uuid7(),
            "username": "alice01",
            "email": "alice@example.com",
            "login_provider": "local",
            "status": UserStatus.ACTIVE,
            "is_verified": True,
            "created_at": datetime(2026, 1, 1, tzinfo=UTC),
        }
        values.update(overrides)
        return UserRecord(**values)

    return _make
