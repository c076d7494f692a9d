"""ABOUTME: Recovery code service, the escape hatch for a lost authenticator
ABOUTME: A correct code removes the user's TOTP credential and is replaced by a fresh one"""

import hmac
import logging

from .exceptions import IncorrectCode, InvalidInput, NotFoundError
from .rate_limits import RateLimits, consume_or_raise
from .unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


def verify_recovery_code(uow: AbstractUnitOfWork, limits: RateLimits, user_id: str, code: str) -> str:
    """
    Reset all second factors of a user with their recovery code.

    Uses the same lockout as TOTP verification, 5 wrong codes per 15 minutes.
    The used code is spent: a new one is generated and returned.

    Args:
        uow: Unit of Work for database operations
        limits: the process wide rate limiters
        user_id: ID of the user
        code: the recovery code the user typed

    Returns:
        The new recovery code

    Raises:
        InvalidInput: If no code was given
        NotFoundError: If there is no such user
        RateLimitExceeded: If the user is locked out
        IncorrectCode: If the code is wrong
    """
    if not code:
        raise InvalidInput("code is required")

    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        consume_or_raise(limits.recovery_code_verify, user_id, "recovery code verification")

        if not hmac.compare_digest(user.recovery_code.encode("utf-8"), code.encode("utf-8")):
            logger.warning(f"Incorrect recovery code for user {user_id}")
            raise IncorrectCode()

        uow.totp_credentials.delete_for_user(user_id)
        new_code = user.regenerate_recovery_code()
        uow.commit()

    limits.recovery_code_verify.reset(user_id)
    logger.info(f"Reset second factors of user {user_id} with recovery code")
    return new_code


def regenerate_recovery_code(uow: AbstractUnitOfWork, user_id: str) -> str:
    """Issue a new recovery code. The caller must already have checked the user's second factor."""
    with uow:
        user = uow.users.get(user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        new_code = user.regenerate_recovery_code()
        uow.commit()

    logger.info(f"Regenerated recovery code for user {user_id}")
    return new_code
