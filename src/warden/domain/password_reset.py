"""ABOUTME: Password reset request domain model for secure password recovery
ABOUTME: Tracks the hashed reset code and the one-way email and second factor verification flags"""

from datetime import UTC, datetime

from .value_objects import REQUEST_LIFETIME, generate_id


class PasswordResetRequest:
    """Password reset request.

    Only the hash of the reset code is kept, since this record is handed back to
    callers. The verification flags only ever move from False to True.
    """

    def __init__(
        self,
        user_id: str,
        email: str,
        code_hash: str,
        request_id: str | None = None,
        created_at: datetime | None = None,
        expires_at: datetime | None = None,
        email_verified: bool = False,
        two_factor_verified: bool = False,
    ):
        if not code_hash:
            raise ValueError("Password reset request needs a code hash")

        current_time = created_at or datetime.now(UTC)

        self.id = request_id or generate_id()
        self.user_id = user_id
        self.email = email
        self.code_hash = code_hash
        self.created_at = current_time
        self.expires_at = expires_at or (current_time + REQUEST_LIFETIME)
        self.email_verified = email_verified
        self.two_factor_verified = two_factor_verified

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the request has expired."""
        return (now or datetime.now(UTC)) >= self.expires_at

    def mark_email_verified(self) -> None:
        self.email_verified = True

    def mark_two_factor_verified(self) -> None:
        if not self.email_verified:
            raise ValueError("Email must be verified before the second factor")
        self.two_factor_verified = True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PasswordResetRequest):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def create_detached_copy(self) -> "PasswordResetRequest":
        """Create a detached copy of this request for use outside SQLAlchemy sessions"""
        return PasswordResetRequest(
            user_id=self.user_id,
            email=self.email,
            code_hash=self.code_hash,
            request_id=self.id,
            created_at=self.created_at,
            expires_at=self.expires_at,
            email_verified=self.email_verified,
            two_factor_verified=self.two_factor_verified,
        )
