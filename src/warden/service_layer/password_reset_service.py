"""ABOUTME: Password reset service layer for managing password recovery
ABOUTME: Handles reset request creation, email code and second factor checks, and the final password update"""

import logging
from datetime import UTC, datetime

from warden.domain.password_reset import PasswordResetRequest
from warden.domain.users import User
from warden.domain.value_objects import generate_code

from . import totp_service
from .exceptions import (
    EmailNotVerified,
    IncorrectCode,
    InvalidRequest,
    NotAllowed,
    NotFoundError,
    RateLimitExceeded,
    SecondFactorNotVerified,
    UserNotFoundError,
)
from .rate_limits import RateLimits, consume_ip_or_raise, consume_or_raise
from .security import hash_code, hash_password, verify_code
from .unit_of_work import AbstractUnitOfWork
from .validation import require_non_empty, require_strong_password, require_valid_email, require_valid_password

logger = logging.getLogger(__name__)


def create_password_reset_request(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    email: str,
    client_ip: str | None = None,
) -> tuple[PasswordResetRequest, str]:
    """
    Start a password reset for the user with this email.

    The raw code is returned once, for the caller to email out. Only its hash is stored.

    Args:
        uow: Unit of Work for database operations
        limits: the process wide rate limiters
        email: Email address requesting password reset
        client_ip: IP of the end user, if known

    Returns:
        (request, code)

    Raises:
        InvalidInput: If the email is malformed
        UserNotFoundError: If no user has this email
        RateLimitExceeded: If the user has made 3 requests in 15 minutes, or the IP too many recently
    """
    require_valid_email(email)

    with uow:
        user = uow.users.get_by_email(email)
        if not user:
            raise UserNotFoundError("No user with that email")

        consume_ip_or_raise(limits.password_hashing_ip, client_ip, "password hashing")
        consume_ip_or_raise(limits.password_reset_create_ip, client_ip, "password reset request")
        consume_or_raise(limits.password_reset_create_user, user.id, "password reset request")

        code = generate_code()
        request = PasswordResetRequest(user_id=user.id, email=user.email, code_hash=hash_code(code))
        uow.password_reset_requests.add(request)
        uow.commit()

        logger.info(f"Created password reset request for user {user.id}")
        return request.create_detached_copy(), code


def _get_active_request(uow: AbstractUnitOfWork, request_id: str, now: datetime) -> PasswordResetRequest:
    """Must be called inside a `with uow:` block."""
    request = uow.password_reset_requests.get(request_id)
    if request is None:
        raise NotFoundError("Password reset request not found")
    if request.is_expired(now):
        uow.password_reset_requests.delete(request)
        uow.commit()
        raise NotFoundError("Password reset request has expired")
    return request


def get_password_reset_request(uow: AbstractUnitOfWork, request_id: str) -> PasswordResetRequest:
    with uow:
        return _get_active_request(uow, request_id, datetime.now(UTC)).create_detached_copy()


def delete_password_reset_request(uow: AbstractUnitOfWork, request_id: str) -> None:
    with uow:
        request = _get_active_request(uow, request_id, datetime.now(UTC))
        uow.password_reset_requests.delete(request)
        uow.commit()


def get_user_password_reset_requests(uow: AbstractUnitOfWork, user_id: str) -> list[PasswordResetRequest]:
    """The user's unexpired reset requests, oldest first. Expired ones are deleted on the way."""
    now = datetime.now(UTC)
    with uow:
        if not uow.users.get(user_id):
            raise NotFoundError(f"User {user_id} not found")

        active = []
        expired = 0
        for request in uow.password_reset_requests.list_for_user(user_id):
            if request.is_expired(now):
                uow.password_reset_requests.delete(request)
                expired += 1
            else:
                active.append(request.create_detached_copy())
        if expired:
            uow.commit()
            logger.info(f"Deleted {expired} expired password reset requests for user {user_id}")
        return active


def delete_user_password_reset_requests(uow: AbstractUnitOfWork, user_id: str) -> int:
    with uow:
        if not uow.users.get(user_id):
            raise NotFoundError(f"User {user_id} not found")
        deleted = uow.password_reset_requests.delete_for_user(user_id)
        uow.commit()
    logger.info(f"Deleted {deleted} password reset requests for user {user_id}")
    return deleted


def _invalidate(uow: AbstractUnitOfWork, request: PasswordResetRequest, reason: str) -> None:
    uow.password_reset_requests.delete(request)
    uow.commit()
    logger.warning(f"Deleted password reset request {request.id}: {reason}")


def verify_password_reset_request_email(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    request_id: str,
    code: str,
    client_ip: str | None = None,
) -> PasswordResetRequest:
    """
    Check the code that was emailed out, proving control of the address.

    The request allows 5 attempts. The 5th wrong code deletes it.

    Raises:
        InvalidInput: If no code was given
        NotFoundError: If the request does not exist or has expired
        RateLimitExceeded: If the request has no attempts left or the IP is hashing too much
        IncorrectCode: If the code is wrong
    """
    require_non_empty(code, "code")

    with uow:
        request = _get_active_request(uow, request_id, datetime.now(UTC))

        consume_ip_or_raise(limits.password_hashing_ip, client_ip, "password hashing")
        if not limits.password_reset_verify_email.consume(request.id):
            _invalidate(uow, request, "attempts exhausted")
            raise RateLimitExceeded("password reset code")

        if not verify_code(code, request.code_hash):
            if not limits.password_reset_verify_email.check(request.id):
                _invalidate(uow, request, "too many incorrect codes")
                limits.password_reset_verify_email.reset(request.id)
            raise IncorrectCode()

        request.mark_email_verified()
        uow.commit()
        limits.password_reset_verify_email.reset(request.id)

        logger.info(f"Verified email for password reset request {request.id}")
        return request.create_detached_copy()


def verify_password_reset_request_2fa(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    request_id: str,
    code: str,
) -> PasswordResetRequest:
    """
    Check a TOTP code for a reset request whose email has been verified.

    Shares the user's TOTP lockout: 5 wrong codes in 15 minutes lock the user
    out and delete the request.

    Raises:
        InvalidInput: If no code was given
        NotFoundError: If the request does not exist or has expired
        EmailNotVerified: If the emailed code has not been checked yet
        NotAllowed: If the user has no TOTP credential
        RateLimitExceeded: If the user is locked out
        IncorrectCode: If the code is wrong
    """
    require_non_empty(code, "code")

    with uow:
        request = _get_active_request(uow, request_id, datetime.now(UTC))
        if not request.email_verified:
            raise EmailNotVerified("Email must be verified first")

        credential = uow.totp_credentials.get(request.user_id)
        if credential is None:
            raise NotAllowed("User has no second factor registered")

        if not limits.totp_verify.consume(request.user_id):
            _invalidate(uow, request, "user locked out of TOTP")
            raise RateLimitExceeded("TOTP verification")

        key = totp_service.decrypt_totp_key(credential.encrypted_key, request.user_id)
        if not totp_service.check_totp_code(key, code):
            if not limits.totp_verify.check(request.user_id):
                _invalidate(uow, request, "too many incorrect TOTP codes")
            raise IncorrectCode()

        request.mark_two_factor_verified()
        uow.commit()
        limits.totp_verify.reset(request.user_id)

        logger.info(f"Verified second factor for password reset request {request.id}")
        return request.create_detached_copy()


def reset_password(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    request_id: str,
    new_password: str,
    client_ip: str | None = None,
    check_pwned: bool = False,
) -> User:
    """
    Set a new password using a verified reset request.

    Needs the request's email verified, and its second factor verified too if
    the user has a TOTP credential. On success every reset request of the
    user is deleted and the email counts as verified.

    Raises:
        InvalidInput: If the password is malformed
        InvalidRequest: If the request does not exist or has expired
        EmailNotVerified: If the emailed code has not been checked
        SecondFactorNotVerified: If the user has TOTP and it has not been checked
        PasswordTooWeak: If the password fails the strength policy
        RateLimitExceeded: If the IP is hashing too much
    """
    require_valid_password(new_password)

    with uow:
        request = uow.password_reset_requests.get(request_id)
        if request is None or request.is_expired():
            raise InvalidRequest("Password reset request not found or expired")

        if not request.email_verified:
            raise EmailNotVerified("Email must be verified first")
        has_totp = uow.totp_credentials.get(request.user_id) is not None
        if has_totp and not request.two_factor_verified:
            raise SecondFactorNotVerified("Second factor must be verified first")

        user = uow.users.get(request.user_id)
        if user is None:
            raise InvalidRequest("User of the password reset request no longer exists")

        require_strong_password(new_password, check_pwned=check_pwned)
        consume_ip_or_raise(limits.password_hashing_ip, client_ip, "password hashing")

        user.set_password_hash(hash_password(new_password))
        if user.email == request.email:
            user.mark_email_verified()
        uow.password_reset_requests.delete_for_user(user.id)
        uow.commit()

        logger.info(f"Reset password for user {user.id}")
        return user.create_detached_copy()


def delete_expired_requests(uow: AbstractUnitOfWork, now: datetime | None = None) -> int:
    with uow:
        deleted = uow.password_reset_requests.delete_expired(now or datetime.now(UTC))
        uow.commit()
        return deleted
