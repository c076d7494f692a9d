"""ABOUTME: HOTP (RFC 4226) and TOTP (RFC 6238) code generation and verification
ABOUTME: Thin layer over pyotp taking raw key bytes, plus a grace window check for clock drift"""

import base64
from datetime import datetime, timedelta

import pyotp
from pyotp.utils import strings_equal

MIN_DIGITS = 6
MAX_DIGITS = 8

DEFAULT_INTERVAL = timedelta(seconds=30)
DEFAULT_DIGITS = 6


def _check_digits(digits: int) -> None:
    # a wrong digit count is a programming error, not a bad request
    if not MIN_DIGITS <= digits <= MAX_DIGITS:
        raise ValueError(f"OTP digits must be between {MIN_DIGITS} and {MAX_DIGITS}, got {digits}")


def _hotp(key: bytes, digits: int) -> pyotp.HOTP:
    _check_digits(digits)
    # pyotp wants the shared secret as base32 text
    return pyotp.HOTP(base64.b32encode(key).decode("ascii"), digits=digits)


def generate_hotp(key: bytes, counter: int, digits: int = DEFAULT_DIGITS) -> str:
    """HMAC-SHA1 over the 8 byte counter, dynamically truncated, zero padded to `digits`."""
    return _hotp(key, digits).at(counter)


def verify_hotp(key: bytes, counter: int, digits: int, code: str) -> bool:
    return strings_equal(generate_hotp(key, counter, digits), code)


def totp_counter(now: datetime, interval: timedelta = DEFAULT_INTERVAL) -> int:
    interval_seconds = int(interval.total_seconds())
    if interval_seconds <= 0:
        raise ValueError("TOTP interval must be at least one second")
    return int(now.timestamp()) // interval_seconds


def generate_totp(
    now: datetime, key: bytes, interval: timedelta = DEFAULT_INTERVAL, digits: int = DEFAULT_DIGITS
) -> str:
    return generate_hotp(key, totp_counter(now, interval), digits)


def verify_totp(
    now: datetime, key: bytes, interval: timedelta, digits: int, code: str
) -> bool:
    return strings_equal(generate_totp(now, key, interval, digits), code)


def verify_totp_with_grace(
    now: datetime,
    key: bytes,
    interval: timedelta,
    digits: int,
    code: str,
    grace: timedelta,
) -> bool:
    """
    Accept a code for the time step of `now - grace`, `now` or `now + grace`.

    Each distinct counter is checked once, so a grace shorter than the interval
    never widens the window past three steps.

    Args:
        now: the server's current time
        key: raw shared secret
        interval: length of a time step
        digits: code length, 6 to 8
        code: the code the user typed
        grace: how much clock drift to tolerate either way

    Returns:
        True if any of the candidate steps produces `code`
    """
    hotp = _hotp(key, digits)
    counters: list[int] = []
    for moment in (now - grace, now, now + grace):
        counter = totp_counter(moment, interval)
        if counter not in counters:
            counters.append(counter)

    matched = False
    for counter in counters:
        # no early exit, every candidate gets compared
        if strings_equal(hotp.at(counter), code):
            matched = True
    return matched
