"""ABOUTME: TOTP credential domain model
ABOUTME: One registered authenticator per user, with the shared key kept encrypted"""

from datetime import UTC, datetime


class TOTPCredential:
    """The registered TOTP key of a user. `encrypted_key` is a Fernet token, never the raw key."""

    def __init__(self, user_id: str, encrypted_key: str, created_at: datetime | None = None):
        if not encrypted_key:
            raise ValueError("TOTP credential needs a key")
        self.user_id = user_id
        self.encrypted_key = encrypted_key
        self.created_at = created_at or datetime.now(UTC)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TOTPCredential):  # pragma: no cover
            return False
        return self.user_id == other.user_id

    def __hash__(self) -> int:
        return hash(self.user_id)

    def create_detached_copy(self) -> "TOTPCredential":
        return TOTPCredential(
            user_id=self.user_id,
            encrypted_key=self.encrypted_key,
            created_at=self.created_at,
        )
