"""ABOUTME: SQLAlchemy implementations of repository interfaces
ABOUTME: Provides concrete database operations using SQLAlchemy sessions"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from warden.adapters import orm
from warden.domain.email_verification import EmailVerificationRequest
from warden.domain.password_reset import PasswordResetRequest
from warden.domain.totp_credentials import TOTPCredential
from warden.domain.users import User
from warden.service_layer.repositories import (
    EmailVerificationRequestRepository,
    PasswordResetRequestRepository,
    TOTPCredentialRepository,
    UserRepository,
)

UPSERT_INSERTS = {"sqlite": sqlite.insert, "postgresql": postgresql.insert}


class SqlAlchemyRepository:
    """Base SQLAlchemy repository with common functionality."""

    def __init__(self, session: Session) -> None:
        self.session = session


class SqlAlchemyUserRepository(SqlAlchemyRepository, UserRepository):
    """SQLAlchemy implementation of UserRepository."""

    def add(self, item: User) -> None:
        """Add a user to the repository."""
        self.session.add(item)

    def get(self, item_id: str) -> User | None:
        """Get a user by their ID."""
        return self.session.query(User).filter_by(id=item_id).first()

    def all(self) -> Iterable[User]:
        """Get all users, oldest first."""
        return self.session.query(User).order_by(orm.users.c.created_at).all()

    def get_by_email(self, email: str) -> User | None:
        """Get a user by their email address."""
        return self.session.query(User).filter_by(email=email).first()

    def delete(self, user: User) -> None:
        self.session.delete(user)


class SqlAlchemyEmailVerificationRequestRepository(SqlAlchemyRepository, EmailVerificationRequestRepository):
    """SQLAlchemy implementation of EmailVerificationRequestRepository."""

    def add(self, item: EmailVerificationRequest) -> None:
        self.session.add(item)

    def get(self, item_id: str) -> EmailVerificationRequest | None:
        return self.session.query(EmailVerificationRequest).filter_by(id=item_id).first()

    def all(self) -> Iterable[EmailVerificationRequest]:
        return self.session.query(EmailVerificationRequest).all()

    def get_for_user(self, user_id: str) -> EmailVerificationRequest | None:
        return (
            self.session.query(EmailVerificationRequest)
            .filter_by(user_id=user_id)
            .order_by(orm.email_verification_requests.c.created_at.desc())
            .first()
        )

    def delete_for_user(self, user_id: str) -> int:
        return (
            self.session.query(EmailVerificationRequest)
            .filter_by(user_id=user_id)
            .delete(synchronize_session="fetch")
        )

    def delete_expired(self, now: datetime) -> int:
        return (
            self.session.query(EmailVerificationRequest)
            .filter(orm.email_verification_requests.c.expires_at <= now)
            .delete(synchronize_session="fetch")
        )


class SqlAlchemyPasswordResetRequestRepository(SqlAlchemyRepository, PasswordResetRequestRepository):
    """SQLAlchemy implementation of PasswordResetRequestRepository."""

    def add(self, item: PasswordResetRequest) -> None:
        self.session.add(item)

    def get(self, item_id: str) -> PasswordResetRequest | None:
        return self.session.query(PasswordResetRequest).filter_by(id=item_id).first()

    def all(self) -> Iterable[PasswordResetRequest]:
        return self.session.query(PasswordResetRequest).all()

    def list_for_user(self, user_id: str) -> list[PasswordResetRequest]:
        return (
            self.session.query(PasswordResetRequest)
            .filter_by(user_id=user_id)
            .order_by(orm.password_reset_requests.c.created_at)
            .all()
        )

    def delete(self, request: PasswordResetRequest) -> None:
        self.session.delete(request)

    def delete_for_user(self, user_id: str) -> int:
        return self.session.query(PasswordResetRequest).filter_by(user_id=user_id).delete(synchronize_session="fetch")

    def delete_for_email(self, email: str) -> int:
        return self.session.query(PasswordResetRequest).filter_by(email=email).delete(synchronize_session="fetch")

    def delete_expired(self, now: datetime) -> int:
        return (
            self.session.query(PasswordResetRequest)
            .filter(orm.password_reset_requests.c.expires_at <= now)
            .delete(synchronize_session="fetch")
        )


class SqlAlchemyTOTPCredentialRepository(SqlAlchemyRepository, TOTPCredentialRepository):
    """SQLAlchemy implementation of TOTPCredentialRepository."""

    def get(self, user_id: str) -> TOTPCredential | None:
        return self.session.query(TOTPCredential).filter_by(user_id=user_id).first()

    def upsert(self, credential: TOTPCredential) -> TOTPCredential:
        """Insert the credential, or replace the key of the existing one, in a single statement."""
        dialect = self.session.get_bind().dialect.name
        if dialect not in UPSERT_INSERTS:
            raise NotImplementedError(f"TOTP credential upsert is not supported on {dialect}")
        statement = UPSERT_INSERTS[dialect](orm.totp_credentials).values(
            user_id=credential.user_id,
            encrypted_key=credential.encrypted_key,
            created_at=credential.created_at,
        )
        statement = statement.on_conflict_do_update(
            index_elements=[orm.totp_credentials.c.user_id],
            set_={
                "encrypted_key": statement.excluded.encrypted_key,
                "created_at": statement.excluded.created_at,
            },
        )
        self.session.execute(statement)
        return self.session.execute(
            select(TOTPCredential)
            .filter_by(user_id=credential.user_id)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def delete_for_user(self, user_id: str) -> bool:
        deleted = self.session.query(TOTPCredential).filter_by(user_id=user_id).delete(synchronize_session="fetch")
        return deleted > 0
