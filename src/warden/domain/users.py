"""ABOUTME: User domain model for warden authentication
ABOUTME: Plain Python object holding the email, password hash and recovery code of an account"""

from datetime import UTC, datetime

from .value_objects import generate_id, generate_recovery_code, validate_email


class User:
    """User domain model. Whether a TOTP credential is registered lives in its own record."""

    def __init__(
        self,
        email: str,
        password_hash: str,
        recovery_code: str | None = None,
        user_id: str | None = None,
        created_at: datetime | None = None,
        email_verified: bool = False,
    ):
        validate_email(email)
        if not password_hash:
            raise ValueError("User must have a password hash")

        self.id = user_id or generate_id()
        self.email = email
        self.password_hash = password_hash
        self.recovery_code = recovery_code or generate_recovery_code()
        self.created_at = created_at or datetime.now(UTC)
        self.email_verified = email_verified

    def change_email(self, email: str) -> None:
        """Switch to a new address. The new address has just been proven, so it counts as verified."""
        validate_email(email)
        self.email = email
        self.email_verified = True

    def mark_email_verified(self) -> None:
        self.email_verified = True

    def set_password_hash(self, password_hash: str) -> None:
        if not password_hash:
            raise ValueError("User must have a password hash")
        self.password_hash = password_hash

    def regenerate_recovery_code(self) -> str:
        self.recovery_code = generate_recovery_code()
        return self.recovery_code

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, User):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"

    def create_detached_copy(self) -> "User":
        """Create a detached copy of this user for use outside SQLAlchemy sessions"""
        return User(
            email=self.email,
            password_hash=self.password_hash,
            recovery_code=self.recovery_code,
            user_id=self.id,
            created_at=self.created_at,
            email_verified=self.email_verified,
        )
