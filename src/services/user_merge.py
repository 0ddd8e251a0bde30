"""
Field-level merge of an update payload onto a user row.

Rules per field:

- IMMUTABLE_FIELDS are never touched by a merge, even if present in the
  payload. id and created_at never change; deleted_at only changes through
  delete/restore; last_login_at only through record_login; updated_at is
  stamped by the store.
- REQUIRED_FIELDS are overwritten when present. They cannot be cleared
  (validation rejects None before the merge runs).
- CLEARABLE_FIELDS are overwritten when present, and an explicit None clears
  them. Absent keys leave the current value alone.

"Present" means the key is in ``changes``; callers build it with
``UserUpdate.model_dump(exclude_unset=True)`` so defaults never count as
explicit values.
"""
from collections.abc import Mapping
from typing import Any

from models.user import User

IMMUTABLE_FIELDS = frozenset(
    {"id", "created_at", "updated_at", "deleted_at", "last_login_at"},
)
REQUIRED_FIELDS = frozenset(
    {"username", "email", "login_provider", "status", "is_verified"},
)
CLEARABLE_FIELDS = frozenset(
    {
        "external_id",
        "password_hash",
        "full_name",
        "phone_number",
        "date_of_birth",
        "address",
        "bio",
        "profile_picture",
    },
)


def merge_user_changes(user: User, changes: Mapping[str, Any]) -> list[str]:
    """
    Apply ``changes`` to ``user`` in place.

    Args:
        user: The row loaded from the store.
        changes: Explicitly-set fields of the update payload.

    Returns:
        Names of the fields whose value actually changed, in payload order.

    Raises:
        ValueError: If a required field is set to None or an unknown field is given.
    """
    changed: list[str] = []
    for name, value in changes.items():
        if name in IMMUTABLE_FIELDS:
            continue
        if name in REQUIRED_FIELDS:
            if value is None:
                raise ValueError(f"{name} cannot be cleared")
        elif name not in CLEARABLE_FIELDS:
            raise ValueError(f"Unknown user field: {name}")
        if getattr(user, name) != value:
            setattr(user, name, value)
            changed.append(name)
    return changed
