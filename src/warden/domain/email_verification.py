"""ABOUTME: Email verification request domain model
ABOUTME: A short lived one-time code proving that a user controls an email address"""

import hmac
from datetime import UTC, datetime

from .value_objects import REQUEST_LIFETIME, generate_code, generate_id, validate_email


class EmailVerificationRequest:
    """Outstanding email verification for a user.

    The target email may differ from the user's current one, which is how an
    email change is confirmed. A user has at most one meaningful request: a new
    one supersedes the old.
    """

    def __init__(
        self,
        user_id: str,
        email: str,
        code: str | None = None,
        request_id: str | None = None,
        created_at: datetime | None = None,
        expires_at: datetime | None = None,
    ):
        validate_email(email)

        current_time = created_at or datetime.now(UTC)

        self.id = request_id or generate_id()
        self.user_id = user_id
        self.email = email
        self.code = code or generate_code()
        self.created_at = current_time
        self.expires_at = expires_at or (current_time + REQUEST_LIFETIME)

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    def matches(self, code: str) -> bool:
        """Constant time comparison against the stored code."""
        return hmac.compare_digest(self.code.encode(), code.encode())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EmailVerificationRequest):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def create_detached_copy(self) -> "EmailVerificationRequest":
        """Create a detached copy of this request for use outside SQLAlchemy sessions"""
        return EmailVerificationRequest(
            user_id=self.user_id,
            email=self.email,
            code=self.code,
            request_id=self.id,
            created_at=self.created_at,
            expires_at=self.expires_at,
        )
