"""
Standalone validation functions for user input.

Nothing here raises: each check returns a reason string (or None when the
value is fine) and the entry points collect them into a ValidationResult.
The directory service turns a failed result into FieldValidationError before
anything reaches the store.
"""
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from models.user import UserStatus

# Letters and digits only, no spaces or punctuation
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9]+$")
USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50

# Deliberately loose: one @, no whitespace, a dot in the domain
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
EMAIL_MAX_LENGTH = 255

PHONE_PATTERN = re.compile(r"^\+?[0-9][0-9 ()-]{2,19}$")

MAX_LENGTHS = {
    "external_id": 255,
    "password_hash": 255,
    "login_provider": 50,
    "full_name": 100,
    "phone_number": 20,
    "address": 200,
    "bio": 500,
    # Room for a data-URI encoded image
    "profile_picture": 200_000,
}

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class FieldIssue:
    """A single malformed field."""

    field: str
    reason: str


@dataclass
class ValidationResult:
    """Outcome of validating a payload: valid when no issues were found."""

    issues: list[FieldIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when the payload is valid."""
        return not self.issues

    def add(self, field_name: str, reason: str | None) -> None:
        """Record an issue when ``reason`` is set."""
        if reason is not None:
            self.issues.append(FieldIssue(field_name, reason))


def check_username(value: str) -> str | None:
    """Username: 3-50 letters and digits."""
    if not USERNAME_MIN_LENGTH <= len(value) <= USERNAME_MAX_LENGTH:
        return (
            f"must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters "
            f"(got {len(value)})"
        )
    if not USERNAME_PATTERN.match(value):
        return "can only contain letters and numbers, no spaces or special characters"
    return None


def check_email(value: str) -> str | None:
    """Email: address shaped, at most 255 characters."""
    if len(value) > EMAIL_MAX_LENGTH:
        return f"exceeds maximum length of {EMAIL_MAX_LENGTH} characters"
    if not EMAIL_PATTERN.match(value):
        return "is not a valid email address"
    return None


def check_full_name(value: str) -> str | None:
    """Full name: letters (any script) and spaces only."""
    if not all(ch.isalpha() or ch.isspace() for ch in value):
        return "can only contain letters and spaces"
    return None


def check_phone_number(value: str) -> str | None:
    """Phone number: digits with optional leading +, spaces, dashes, parentheses."""
    if not PHONE_PATTERN.match(value):
        return "is not a valid phone number"
    return None


def check_date_of_birth(value: date) -> str | None:
    """Date of birth: not in the future."""
    if value > datetime.now(UTC).date():
        return "cannot be in the future"
    return None


def check_live_status(value: UserStatus) -> str | None:
    """Status: BANNED is only ever set by deleting the account."""
    if value == UserStatus.BANNED:
        return "'banned' is reserved for deleted accounts; delete the user instead"
    return None


def check_not_blank(value: str) -> str | None:
    """Reject empty or whitespace-only strings."""
    if not value.strip():
        return "cannot be blank"
    return None


_FIELD_CHECKS: dict[str, Callable[[Any], str | None]] = {
    "username": check_username,
    "email": check_email,
    "full_name": check_full_name,
    "phone_number": check_phone_number,
    "date_of_birth": check_date_of_birth,
    "status": check_live_status,
    "external_id": check_not_blank,
    "password_hash": check_not_blank,
    "login_provider": check_not_blank,
}

# Fields that may never be set to None
_REQUIRED_FIELDS = frozenset({"username", "email", "status", "is_verified", "login_provider"})


def _check_fields(values: Mapping[str, Any], result: ValidationResult) -> None:
    for name, value in values.items():
        if value is None:
            if name in _REQUIRED_FIELDS:
                result.add(name, "cannot be null")
            continue
        max_length = MAX_LENGTHS.get(name)
        if max_length is not None and isinstance(value, str) and len(value) > max_length:
            result.add(name, f"exceeds maximum length of {max_length} characters")
            continue
        check = _FIELD_CHECKS.get(name)
        if check is not None:
            result.add(name, check(value))


def validate_new_user(values: Mapping[str, Any]) -> ValidationResult:
    """
    Validate a create payload (UserCreate.model_dump()).

    A user needs some way to authenticate: a local password hash, an external
    identity, or both.
    """
    result = ValidationResult()
    _check_fields(
        {k: v for k, v in values.items() if k != "login_provider" or v is not None},
        result,
    )
    if values.get("password_hash") is None and values.get("external_id") is None:
        result.add("password_hash", "required unless external_id is provided")
    return result


def validate_user_changes(changes: Mapping[str, Any]) -> ValidationResult:
    """Validate the explicitly-set fields of an update payload."""
    result = ValidationResult()
    _check_fields(changes, result)
    return result


def validate_user_query(page: int, page_size: int) -> ValidationResult:
    """Validate pagination bounds for listing."""
    result = ValidationResult()
    if page < 1:
        result.add("page", "must be at least 1")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        result.add("page_size", f"must be between 1 and {MAX_PAGE_SIZE}")
    return result
