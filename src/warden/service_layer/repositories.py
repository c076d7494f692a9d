"""ABOUTME: Abstract repository interfaces for domain objects
ABOUTME: Defines repository contracts to abstract database operations from business logic"""

from __future__ import annotations

import abc
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from warden.domain.email_verification import EmailVerificationRequest
from warden.domain.password_reset import PasswordResetRequest
from warden.domain.totp_credentials import TOTPCredential
from warden.domain.users import User


class AbstractRepository(abc.ABC):
    """Base repository interface providing common operations."""

    @abc.abstractmethod
    def add(self, item: Any) -> None:
        """Add an item to the repository."""
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, item_id: str) -> Any | None:
        """Get an item by its ID."""
        raise NotImplementedError

    @abc.abstractmethod
    def all(self) -> Iterable[Any]:
        """List all items in the repository."""
        raise NotImplementedError


class UserRepository(AbstractRepository):
    """Repository interface for User domain objects."""

    @abc.abstractmethod
    def get_by_email(self, email: str) -> User | None:
        """Get a user by their email address."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, user: User) -> None:
        raise NotImplementedError


class EmailVerificationRequestRepository(AbstractRepository):
    """Repository interface for EmailVerificationRequest domain objects."""

    @abc.abstractmethod
    def get_for_user(self, user_id: str) -> EmailVerificationRequest | None:
        """Get the most recent request for a user, expired or not."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete_for_user(self, user_id: str) -> int:
        """Delete every request for a user. Returns how many went."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete_expired(self, now: datetime) -> int:
        raise NotImplementedError


class PasswordResetRequestRepository(AbstractRepository):
    """Repository interface for PasswordResetRequest domain objects."""

    @abc.abstractmethod
    def list_for_user(self, user_id: str) -> list[PasswordResetRequest]:
        """Get every request for a user, oldest first, expired or not."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, request: PasswordResetRequest) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete_for_user(self, user_id: str) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def delete_for_email(self, email: str) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def delete_expired(self, now: datetime) -> int:
        raise NotImplementedError


class TOTPCredentialRepository(abc.ABC):
    """Repository interface for TOTPCredential domain objects, keyed by user id."""

    @abc.abstractmethod
    def get(self, user_id: str) -> TOTPCredential | None:
        raise NotImplementedError

    @abc.abstractmethod
    def upsert(self, credential: TOTPCredential) -> TOTPCredential:
        """Create the credential, or replace the user's existing one, in a single operation."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete_for_user(self, user_id: str) -> bool:
        """Delete the user's credential. Returns False if there was none."""
        raise NotImplementedError
