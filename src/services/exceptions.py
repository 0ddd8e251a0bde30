"""
Closed error taxonomy for directory operations.

Callers only ever see these kinds, never raw SQLAlchemy or Redis errors, so a
presentation layer can map each one to a protocol status deterministically.
"""
from schemas.validators import FieldIssue


class DirectoryError(Exception):
    """Base class for every error a directory operation can raise."""


class NotFoundError(DirectoryError):
    """Raised when an entity does not exist (or is soft-deleted)."""

    def __init__(self, entity: str, key: object) -> None:
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class AlreadyExistsError(DirectoryError):
    """Raised when a unique field is already held by another live user."""

    def __init__(self, field: str, value: object) -> None:
        self.field = field
        self.value = value
        super().__init__(f"A user with {field} '{value}' already exists")


class InvalidStateError(DirectoryError):
    """
    Raised when an operation is invalid for a resource's current state.

    E.g. restoring a user that is not deleted, or resolving a session whose
    user is suspended.
    """

    def __init__(self, operation: str, current_state: str) -> None:
        self.operation = operation
        self.current_state = current_state
        super().__init__(f"Cannot {operation}: current state is '{current_state}'")


class UnavailableError(DirectoryError):
    """Raised when the system of record cannot be reached in time."""

    def __init__(self, backend: str, detail: str | None = None) -> None:
        self.backend = backend
        self.detail = detail
        message = f"Backend '{backend}' unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class FieldValidationError(DirectoryError):
    """Raised when input fails validation. Carries every issue found."""

    def __init__(self, issues: list[FieldIssue]) -> None:
        if not issues:
            raise ValueError("FieldValidationError requires at least one issue")
        self.issues = issues
        self.field = issues[0].field
        self.reason = issues[0].reason
        super().__init__("; ".join(f"{i.field}: {i.reason}" for i in issues))
