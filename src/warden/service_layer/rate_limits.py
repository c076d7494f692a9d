"""ABOUTME: The set of named rate limiters the verification flows share
ABOUTME: Built once per process by bootstrap and injected into every service call that needs it"""

import logging
from dataclasses import dataclass, fields
from datetime import timedelta

from .exceptions import RateLimitExceeded
from .ratelimit import Clock, CountingLimiter, ExpiringTokenBucket, RefillingTokenBucket, utc_now

logger = logging.getLogger(__name__)

Limiter = CountingLimiter | RefillingTokenBucket | ExpiringTokenBucket


@dataclass(frozen=True, kw_only=True)
class RateLimits:
    # keyed by client IP, protects the CPU spent on Argon2id
    password_hashing_ip: RefillingTokenBucket
    # keyed by client IP, 5 wrong passwords per 15 minutes
    login_ip: ExpiringTokenBucket
    # keyed by user id
    email_verification_create: ExpiringTokenBucket
    email_verification_verify: ExpiringTokenBucket
    password_reset_create_user: ExpiringTokenBucket
    # keyed by client IP
    password_reset_create_ip: RefillingTokenBucket
    # keyed by password reset request id
    password_reset_verify_email: CountingLimiter
    # keyed by user id
    totp_verify: ExpiringTokenBucket
    recovery_code_verify: ExpiringTokenBucket

    def all_limiters(self) -> list[Limiter]:
        return [getattr(self, field.name) for field in fields(self)]

    def clear_all(self) -> None:
        """Drop every entry of every limiter. Called periodically to bound memory."""
        for limiter in self.all_limiters():
            limiter.clear()
        logger.info("Cleared all rate limiters")


def create_rate_limits(clock: Clock = utc_now) -> RateLimits:
    return RateLimits(
        password_hashing_ip=RefillingTokenBucket(5, timedelta(seconds=10), clock=clock),
        login_ip=ExpiringTokenBucket(5, timedelta(minutes=15), clock=clock),
        email_verification_create=ExpiringTokenBucket(3, timedelta(minutes=15), clock=clock),
        email_verification_verify=ExpiringTokenBucket(5, timedelta(minutes=15), clock=clock),
        password_reset_create_user=ExpiringTokenBucket(3, timedelta(minutes=15), clock=clock),
        password_reset_create_ip=RefillingTokenBucket(3, timedelta(minutes=5), clock=clock),
        password_reset_verify_email=CountingLimiter(5),
        totp_verify=ExpiringTokenBucket(5, timedelta(minutes=15), clock=clock),
        recovery_code_verify=ExpiringTokenBucket(5, timedelta(minutes=15), clock=clock),
    )


def consume_or_raise(limiter: Limiter, key: str, operation: str) -> None:
    """Take a token for `key`, or raise RateLimitExceeded if there is none."""
    if not limiter.consume(key):
        logger.warning(f"Rate limit exceeded for {operation}")
        raise RateLimitExceeded(operation)


def consume_ip_or_raise(limiter: Limiter, client_ip: str | None, operation: str) -> None:
    """IP keyed limits only apply when the caller told us the client IP."""
    if client_ip:
        consume_or_raise(limiter, client_ip, operation)
