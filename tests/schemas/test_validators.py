"""Tests for user input validation."""
from datetime import date, timedelta

import pytest

from models.user import UserStatus
from schemas.user import UserCreate
from schemas.validators import (
    MAX_PAGE_SIZE,
    FieldIssue,
    check_email,
    check_full_name,
    check_username,
    validate_new_user,
    validate_user_changes,
    validate_user_query,
)


class TestCheckUsername:
    """Tests for username validation."""

    @pytest.mark.parametrize("username", ["abc", "alice01", "A" * 50, "ALICE"])
    def test__valid_usernames__pass(self, username: str) -> None:
        """Letters and digits within 3-50 characters are accepted."""
        assert check_username(username) is None

    @pytest.mark.parametrize("username", ["ab", "a" * 51, ""])
    def test__length_out_of_range__rejected(self, username: str) -> None:
        """Too short or too long usernames are rejected with the bounds."""
        assert "between 3 and 50" in check_username(username)

    @pytest.mark.parametrize("username", ["alice 01", "alice_01", "alice.b", "álice"])
    def test__special_characters__rejected(self, username: str) -> None:
        """Spaces, punctuation and non-ASCII letters are rejected."""
        assert check_username(username) is not None


class TestCheckEmail:
    """Tests for email validation."""

    def test__valid_email__passes(self) -> None:
        """A plain address is accepted."""
        assert check_email("alice@example.com") is None

    @pytest.mark.parametrize("email", ["alice", "alice@", "alice@example", "a b@example.com"])
    def test__malformed_email__rejected(self, email: str) -> None:
        """Addresses without a domain dot or with whitespace are rejected."""
        assert check_email(email) == "is not a valid email address"

    def test__overlong_email__rejected(self) -> None:
        """Addresses over 255 characters are rejected."""
        assert "maximum length" in check_email("a" * 250 + "@example.com")


class TestCheckFullName:
    """Tests for full name validation."""

    def test__letters_and_spaces__pass(self) -> None:
        """Names in any script are accepted."""
        assert check_full_name("Alice Zoë Müller") is None

    def test__digits__rejected(self) -> None:
        """Digits are not part of a name."""
        assert check_full_name("Alice 2") is not None


class TestValidateNewUser:
    """Tests for create payload validation."""

    def test__valid_payload__ok(self) -> None:
        """A complete local account validates."""
        data = UserCreate(username="alice01", email="alice@example.com", password_hash="h")

        assert validate_new_user(data.model_dump()).ok

    def test__external_only_account__ok(self) -> None:
        """An external identity is enough without a password hash."""
        data = UserCreate(username="alice01", email="alice@example.com", external_id="auth0|1")

        assert validate_new_user(data.model_dump()).ok

    def test__no_credentials__rejected(self) -> None:
        """A user with neither password hash nor external id cannot authenticate."""
        data = UserCreate(username="alice01", email="alice@example.com")

        result = validate_new_user(data.model_dump())

        assert result.issues == [
            FieldIssue("password_hash", "required unless external_id is provided"),
        ]

    def test__every_issue_collected(self) -> None:
        """All malformed fields are reported, not just the first."""
        data = UserCreate(username="a!", email="nope", password_hash="h")

        result = validate_new_user(data.model_dump())

        assert [issue.field for issue in result.issues] == ["username", "email"]

    def test__banned_status__rejected(self) -> None:
        """Users cannot be created already banned."""
        data = UserCreate(
            username="alice01", email="alice@example.com", password_hash="h",
            status=UserStatus.BANNED,
        )

        result = validate_new_user(data.model_dump())

        assert result.issues[0].field == "status"

    def test__future_date_of_birth__rejected(self) -> None:
        """Birth dates cannot be in the future."""
        data = UserCreate(
            username="alice01", email="alice@example.com", password_hash="h",
            date_of_birth=date.today() + timedelta(days=2),
        )

        result = validate_new_user(data.model_dump())

        assert result.issues == [FieldIssue("date_of_birth", "cannot be in the future")]


class TestValidateUserChanges:
    """Tests for update payload validation."""

    def test__empty_changes__ok(self) -> None:
        """An empty update is valid (and a no-op)."""
        assert validate_user_changes({}).ok

    def test__required_field_cleared__rejected(self) -> None:
        """Required fields cannot be set to None."""
        result = validate_user_changes({"email": None})

        assert result.issues == [FieldIssue("email", "cannot be null")]

    def test__optional_field_cleared__ok(self) -> None:
        """Optional fields may be cleared."""
        assert validate_user_changes({"bio": None, "phone_number": None}).ok

    def test__overlong_bio__rejected(self) -> None:
        """Length limits apply to free-text fields."""
        result = validate_user_changes({"bio": "x" * 501})

        assert result.issues[0].field == "bio"
        assert "500" in result.issues[0].reason

    def test__phone_number_over_column_width__rejected(self) -> None:
        """Phone numbers longer than 20 characters are rejected before reaching the store."""
        result = validate_user_changes({"phone_number": "+" + "1" * 20})

        assert result.issues == [
            FieldIssue("phone_number", "exceeds maximum length of 20 characters"),
        ]

    def test__phone_number_at_column_width__ok(self) -> None:
        """A 20 character phone number fits."""
        assert validate_user_changes({"phone_number": "+" + "1" * 19}).ok

    def test__data_uri_profile_picture__ok(self) -> None:
        """Profile pictures may hold an encoded image well beyond free-text limits."""
        picture = "data:image/png;base64," + "A" * 150_000

        assert validate_user_changes({"profile_picture": picture}).ok

    def test__oversized_profile_picture__rejected(self) -> None:
        """Profile pictures are capped at 200000 characters."""
        result = validate_user_changes({"profile_picture": "A" * 200_001})

        assert result.issues[0].field == "profile_picture"


class TestValidateUserQuery:
    """Tests for pagination validation."""

    def test__defaults__ok(self) -> None:
        """First page of ten is valid."""
        assert validate_user_query(1, 10).ok

    @pytest.mark.parametrize(
        ("page", "page_size", "field"),
        [(0, 10, "page"), (1, 0, "page_size"), (1, MAX_PAGE_SIZE + 1, "page_size")],
    )
    def test__out_of_bounds__rejected(self, page: int, page_size: int, field: str) -> None:
        """Page must be positive and page size within 1..MAX_PAGE_SIZE."""
        result = validate_user_query(page, page_size)

        assert [issue.field for issue in result.issues] == [field]
