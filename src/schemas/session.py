"""Schemas for the session registry."""
from datetime import datetime
from uuid import UUID

from pydantic import AwareDatetime, BaseModel


class SessionMetadata(BaseModel):
    """
    Metadata supplied when a session is opened.

    Timestamps must carry a timezone; naive values are rejected.
    """

    ip_address: str | None = None
    user_agent: str | None = None
    issued_at: AwareDatetime | None = None  # Defaults to now
    expires_at: AwareDatetime | None = None  # Defaults to issued_at + session TTL


class SessionRecord(BaseModel):
    """A registered session: credential identifier bound to a user."""

    session_id: str
    user_id: UUID
    ip_address: str | None = None
    user_agent: str | None = None
    issued_at: AwareDatetime
    expires_at: AwareDatetime

    def is_expired(self, now: datetime) -> bool:
        """Check whether the session has passed its expiry."""
        return now >= self.expires_at
