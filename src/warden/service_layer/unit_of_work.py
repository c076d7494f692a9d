"""ABOUTME: Unit of Work pattern implementation for transaction management
ABOUTME: Coordinates repository operations within database transactions"""

from __future__ import annotations

import abc
from types import TracebackType

from sqlalchemy.orm import Session, sessionmaker

from warden.adapters.database import create_session_factory
from warden.adapters.sql_repository import (
    SqlAlchemyEmailVerificationRequestRepository,
    SqlAlchemyPasswordResetRequestRepository,
    SqlAlchemyTOTPCredentialRepository,
    SqlAlchemyUserRepository,
)
from warden.service_layer.repositories import (
    EmailVerificationRequestRepository,
    PasswordResetRequestRepository,
    TOTPCredentialRepository,
    UserRepository,
)


class AbstractUnitOfWork(abc.ABC):
    """Abstract Unit of Work interface.

    Leaving the block commits, unless it is left with an exception, in which case
    everything not yet committed is rolled back. Services that must persist a
    change and then report a failure (e.g. deleting a request after too many
    wrong codes) call `commit()` before raising.
    """

    users: UserRepository
    email_verification_requests: EmailVerificationRequestRepository
    password_reset_requests: PasswordResetRequestRepository
    totp_credentials: TOTPCredentialRepository

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """SQLAlchemy implementation of Unit of Work pattern."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self.session_factory = session_factory or create_session_factory()
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            self._session = self.session_factory()
        assert isinstance(self._session, Session)
        return self._session

    def __enter__(self) -> SqlAlchemyUnitOfWork:
        # a fresh session per block, so one unit of work can be reused across requests
        self._session = self.session_factory()
        self.users = SqlAlchemyUserRepository(self.session)
        self.email_verification_requests = SqlAlchemyEmailVerificationRequestRepository(self.session)
        self.password_reset_requests = SqlAlchemyPasswordResetRequestRepository(self.session)
        self.totp_credentials = SqlAlchemyTOTPCredentialRepository(self.session)

        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is not None:
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()
            self._session = None

    def commit(self) -> None:
        """Commit the current transaction."""
        self.session.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.session.rollback()
