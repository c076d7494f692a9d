"""ABOUTME: Email verification service layer for proving control of an email address
ABOUTME: Handles request creation, code checks with attempt lockout, and email changes on success"""

import logging
from datetime import UTC, datetime

from warden.domain.email_verification import EmailVerificationRequest
from warden.domain.users import User

from .exceptions import IncorrectCode, NoActiveRequest, NotFoundError, RateLimitExceeded, UserAlreadyExists
from .rate_limits import RateLimits, consume_or_raise
from .unit_of_work import AbstractUnitOfWork
from .validation import require_non_empty, require_valid_email

logger = logging.getLogger(__name__)


def create_email_verification_request(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    user_id: str,
    email: str,
) -> EmailVerificationRequest:
    """
    Create a verification request for `email`, replacing any earlier one of the user.

    The email may differ from the user's current address, in which case a
    successful verification changes the user's email.

    Args:
        uow: Unit of Work for database operations
        limits: the process wide rate limiters
        user_id: ID of the user the address belongs to
        email: the address to verify

    Returns:
        The new request, including its code, for the caller to send out

    Raises:
        InvalidInput: If the email is malformed
        NotFoundError: If there is no such user
        UserAlreadyExists: If another user already has this email
        RateLimitExceeded: If the user is locked out of verifying, or has created 3 requests in 15 minutes
    """
    require_valid_email(email)

    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        owner = uow.users.get_by_email(email)
        if owner and owner.id != user.id:
            raise UserAlreadyExists(email=email)

        # a user locked out of verifying should not get fresh codes to try either
        if not limits.email_verification_verify.check(user_id):
            raise RateLimitExceeded("email verification")
        consume_or_raise(limits.email_verification_create, user_id, "email verification request")

        uow.email_verification_requests.delete_for_user(user_id)
        request = EmailVerificationRequest(user_id=user_id, email=email)
        uow.email_verification_requests.add(request)
        uow.commit()

        logger.info(f"Created email verification request for user {user_id}")
        return request.create_detached_copy()


def _get_active_request(
    uow: AbstractUnitOfWork, limits: RateLimits, user_id: str, now: datetime
) -> EmailVerificationRequest:
    """Must be called inside a `with uow:` block."""
    request = uow.email_verification_requests.get_for_user(user_id)
    if request is None:
        # let the user start over straight away
        limits.email_verification_create.add_token_if_empty(user_id)
        raise NoActiveRequest("No email verification request")
    if request.is_expired(now):
        uow.email_verification_requests.delete_for_user(user_id)
        uow.commit()
        limits.email_verification_create.add_token_if_empty(user_id)
        raise NoActiveRequest("Email verification request has expired")
    return request


def get_email_verification_request(
    uow: AbstractUnitOfWork, limits: RateLimits, user_id: str
) -> EmailVerificationRequest:
    with uow:
        return _get_active_request(uow, limits, user_id, datetime.now(UTC)).create_detached_copy()


def delete_email_verification_request(uow: AbstractUnitOfWork, user_id: str) -> None:
    with uow:
        if not uow.email_verification_requests.delete_for_user(user_id):
            raise NotFoundError("No email verification request")
        uow.commit()


def verify_email_verification_request(
    uow: AbstractUnitOfWork,
    limits: RateLimits,
    user_id: str,
    code: str,
) -> User:
    """
    Check a verification code. On success the user's email becomes the
    request's email and is marked verified.

    Every attempt takes a token from the user's verification bucket (5 per 15
    minutes). When a wrong code empties the bucket, the request is deleted and
    the user must start over once the lockout ends.

    Returns:
        The updated user

    Raises:
        InvalidInput: If no code was given
        NotFoundError: If there is no such user
        NoActiveRequest: If there is no unexpired request
        RateLimitExceeded: If the user is locked out
        IncorrectCode: If the code is wrong
        UserAlreadyExists: If another user took the address in the meantime
    """
    require_non_empty(code, "code")
    now = datetime.now(UTC)

    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        request = _get_active_request(uow, limits, user_id, now)

        if not limits.email_verification_verify.consume(user_id):
            uow.email_verification_requests.delete_for_user(user_id)
            uow.commit()
            logger.warning(f"Email verification locked out for user {user_id}")
            raise RateLimitExceeded("email verification")

        if not request.matches(code):
            if not limits.email_verification_verify.check(user_id):
                # that was the last attempt in this window
                uow.email_verification_requests.delete_for_user(user_id)
                uow.commit()
                logger.warning(f"Too many incorrect email verification codes for user {user_id}")
            raise IncorrectCode()

        if request.email != user.email:
            owner = uow.users.get_by_email(request.email)
            if owner and owner.id != user.id:
                raise UserAlreadyExists(email=request.email)
            user.change_email(request.email)
            # resets started for the old address must not outlive the change
            uow.password_reset_requests.delete_for_user(user_id)
            logger.info(f"User {user_id} changed email")
        else:
            user.mark_email_verified()

        uow.password_reset_requests.delete_for_email(request.email)
        uow.email_verification_requests.delete_for_user(user_id)
        uow.commit()

        limits.email_verification_verify.reset(user_id)
        logger.info(f"Verified email for user {user_id}")
        return user.create_detached_copy()


def delete_expired_requests(uow: AbstractUnitOfWork, now: datetime | None = None) -> int:
    with uow:
        deleted = uow.email_verification_requests.delete_expired(now or datetime.now(UTC))
        uow.commit()
        return deleted
