"""ABOUTME: User management service layer with business logic for user operations
ABOUTME: Handles user creation, deletion, password verification with IP lockout, and password changes"""

import logging

from warden.domain.users import User

from .exceptions import IncorrectPassword, NotFoundError, UserAlreadyExists, UserNotFoundError
from .rate_limits import RateLimits, consume_ip_or_raise
from .security import hash_password, verify_password as verify_password_hash
from .unit_of_work import AbstractUnitOfWork
from .validation import require_strong_password, require_valid_email, require_valid_password

logger = logging.getLogger(__name__)


def create_user(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    email: str,
    password: str,
    client_ip: str | None = None,
    check_pwned: bool = False,
) -> User:
    """
    Create a new user with proper validation.

    Args:
        uow: Unit of Work for database operations
        limits: the process wide rate limiters
        email: User's email address
        password: Plain text password (will be hashed)
        client_ip: IP of the end user, if known, for the hashing rate limit
        check_pwned: also reject passwords found in known breaches

    Returns:
        Created User instance, detached from the session

    Raises:
        InvalidInput: If the email or password is malformed
        UserAlreadyExists: If email already exists
        PasswordTooWeak: If the password fails the strength policy
        RateLimitExceeded: If the client IP has hashed too many passwords recently
    """
    require_valid_email(email)
    require_valid_password(password)

    with uow:
        if uow.users.get_by_email(email):
            raise UserAlreadyExists(email=email)

        require_strong_password(password, check_pwned=check_pwned)
        consume_ip_or_raise(limits.password_hashing_ip, client_ip, "password hashing")

        user = User(email=email, password_hash=hash_password(password))
        uow.users.add(user)
        uow.commit()

        logger.info(f"Created user {user.id}")
        return user.create_detached_copy()


def get_user(uow: AbstractUnitOfWork, user_id: str) -> User:
    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user.create_detached_copy()


def get_user_by_email(uow: AbstractUnitOfWork, email: str) -> User:
    require_valid_email(email)
    with uow:
        user = uow.users.get_by_email(email)
        if not user:
            raise UserNotFoundError("No user with that email")
        return user.create_detached_copy()


def list_users(uow: AbstractUnitOfWork) -> list[User]:
    with uow:
        return [user.create_detached_copy() for user in uow.users.all()]


def delete_user(uow: AbstractUnitOfWork, user_id: str) -> None:
    """Delete a user along with their requests and TOTP credential."""
    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        uow.email_verification_requests.delete_for_user(user_id)
        uow.password_reset_requests.delete_for_user(user_id)
        uow.totp_credentials.delete_for_user(user_id)
        uow.users.delete(user)
        uow.commit()
    logger.info(f"Deleted user {user_id}")


def delete_all_users(uow: AbstractUnitOfWork) -> int:
    """Delete every user, with their requests and TOTP credentials. Returns how many users went."""
    with uow:
        users = list(uow.users.all())
        for user in users:
            uow.email_verification_requests.delete_for_user(user.id)
            uow.password_reset_requests.delete_for_user(user.id)
            uow.totp_credentials.delete_for_user(user.id)
            uow.users.delete(user)
        uow.commit()
    logger.warning(f"Deleted all {len(users)} users")
    return len(users)


def _consume_login_limits(limits: RateLimits, client_ip: str | None) -> None:
    # before any lookup, so probing for users costs attempts too
    consume_ip_or_raise(limits.password_hashing_ip, client_ip, "password hashing")
    consume_ip_or_raise(limits.login_ip, client_ip, "login")


def _check_password(user: User, password: str, limits: RateLimits, client_ip: str | None) -> None:
    if not verify_password_hash(password, user.password_hash):
        logger.info(f"Incorrect password for user {user.id}")
        raise IncorrectPassword()

    if client_ip:
        limits.login_ip.reset(client_ip)


def verify_password(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    user_id: str,
    password: str,
    client_ip: str | None = None,
) -> None:
    """
    Check a user's password.

    Each attempt takes a token from the client IP's login bucket, 5 wrong
    passwords per 15 minutes lock the IP out. A correct password resets it.

    Raises:
        InvalidInput: If the password is malformed
        NotFoundError: If there is no such user
        RateLimitExceeded: If the client IP is locked out
        IncorrectPassword: If the password is wrong
    """
    require_valid_password(password)
    _consume_login_limits(limits, client_ip)
    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        _check_password(user, password, limits, client_ip)


def authenticate_with_password(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    email: str,
    password: str,
    client_ip: str | None = None,
) -> User:
    """Like verify_password but looks the user up by email. Returns the user on success."""
    require_valid_email(email)
    require_valid_password(password)
    _consume_login_limits(limits, client_ip)
    with uow:
        user = uow.users.get_by_email(email)
        if not user:
            raise UserNotFoundError("No user with that email")
        _check_password(user, password, limits, client_ip)
        return user.create_detached_copy()


def update_password(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    user_id: str,
    current_password: str,
    new_password: str,
    client_ip: str | None = None,
    check_pwned: bool = False,
) -> User:
    """
    Change a password, given the current one.

    Any outstanding password reset requests of the user are dropped.

    Raises:
        InvalidInput, NotFoundError, RateLimitExceeded, IncorrectPassword, PasswordTooWeak
    """
    require_valid_password(current_password)
    require_valid_password(new_password)
    _consume_login_limits(limits, client_ip)
    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        _check_password(user, current_password, limits, client_ip)

        require_strong_password(new_password, check_pwned=check_pwned)
        consume_ip_or_raise(limits.password_hashing_ip, client_ip, "password hashing")

        user.set_password_hash(hash_password(new_password))
        uow.password_reset_requests.delete_for_user(user_id)
        uow.commit()

        logger.info(f"Updated password for user {user_id}")
        return user.create_detached_copy()


def get_recovery_code(uow: AbstractUnitOfWork, user_id: str) -> str:
    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        return user.recovery_code
