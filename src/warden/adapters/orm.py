"""ABOUTME: SQLAlchemy table definitions for warden
ABOUTME: Users, verification and reset requests, and TOTP credentials, mapped imperatively onto plain domain objects"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Index, String, Table, Text, TypeDecorator
from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.orm import registry

ID_LENGTH = 24


def aware_utcnow() -> datetime:  # pragma: no cover
    return datetime.now(UTC)


class TZAwareDatetime(TypeDecorator):
    """Custom type for timezone-aware datetime objects."""

    impl = TIMESTAMP
    cache_ok = True

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        # Ensure timezone=True for PostgreSQL
        kwargs.setdefault("timezone", True)
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value: Any, dialect: Dialect) -> datetime | None:
        # SQLite drops the offset, so store everything as UTC
        if isinstance(value, datetime) and value.tzinfo is not None:
            return value.astimezone(UTC)
        return value

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return value

        # If the datetime is naive, assume it's UTC and make it aware
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=UTC)

        return value


# Create a registry for imperative mapping
mapper_registry = registry()
metadata = mapper_registry.metadata

users = Table(
    "users",
    metadata,
    Column("id", String(ID_LENGTH), primary_key=True),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("email", String(255), nullable=False, unique=True),
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("password_hash", Text, nullable=False),
    Column("recovery_code", String(32), nullable=False),
)

email_verification_requests = Table(
    "email_verification_requests",
    metadata,
    Column("id", String(ID_LENGTH), primary_key=True),
    Column("user_id", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("expires_at", TZAwareDatetime(), nullable=False),
    Column("email", String(255), nullable=False),
    Column("code", String(32), nullable=False),
)

password_reset_requests = Table(
    "password_reset_requests",
    metadata,
    Column("id", String(ID_LENGTH), primary_key=True),
    Column("user_id", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("expires_at", TZAwareDatetime(), nullable=False),
    Column("email", String(255), nullable=False),
    Column("code_hash", Text, nullable=False),
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("two_factor_verified", Boolean, nullable=False, default=False),
)

# user_id is the primary key: one credential per user
totp_credentials = Table(
    "totp_credentials",
    metadata,
    Column("user_id", String(ID_LENGTH), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("created_at", TZAwareDatetime(), nullable=False, default=aware_utcnow),
    Column("encrypted_key", Text, nullable=False),
)

Index("ix_email_verification_requests_user_id", email_verification_requests.c.user_id)
Index("ix_email_verification_requests_expires_at", email_verification_requests.c.expires_at)
Index("ix_password_reset_requests_user_id", password_reset_requests.c.user_id)
Index("ix_password_reset_requests_email", password_reset_requests.c.email)
Index("ix_password_reset_requests_expires_at", password_reset_requests.c.expires_at)
