"""ABOUTME: Password validators that plug into Django's password validation framework
ABOUTME: Work without Django settings, plus a Have I Been Pwned range check"""

import hashlib

import requests
from django.contrib.auth.password_validation import CommonPasswordValidator
from django.core.exceptions import ValidationError

PWNED_PASSWORDS_RANGE_URL = "https://api.pwnedpasswords.com/range/{prefix}"
PWNED_PASSWORDS_TIMEOUT_SECONDS = 5

# Django's own MinimumLengthValidator and NumericPasswordValidator build their
# messages with ngettext/gettext, which needs configured settings. These
# versions give plain strings so Django's localisation is never triggered.


class MinimumLengthValidator:
    """
    Validate that the password is of a minimum length.
    """

    def __init__(self, min_length: int = 8) -> None:
        self.min_length = min_length

    def validate(self, password: str, user: object | None = None) -> None:
        if len(password) < self.min_length:
            raise ValidationError(self.get_error_message(), code="password_too_short")

    def get_error_message(self) -> str:
        return f"This password is too short. It must contain at least {self.min_length} characters."

    def get_help_text(self) -> str:
        return f"Your password must contain at least {self.min_length} characters."


class NumericPasswordValidator:
    def validate(self, password: str, user: object | None = None) -> None:
        if password.isdigit():
            raise ValidationError(self.get_error_message(), code="password_entirely_numeric")

    def get_error_message(self) -> str:
        return "This password is entirely numeric."

    def get_help_text(self) -> str:
        return "Your password cannot be entirely numeric."


class SafeCommonPasswordValidator(CommonPasswordValidator):  # type: ignore[no-any-unimported]
    """Django's common password list, with plain text messages."""

    def get_error_message(self) -> str:
        return "This password is too common."

    def get_help_text(self) -> str:
        return "Your password cannot be a commonly used password."


class PwnedPasswordValidator:
    """
    Reject passwords that appear in the Have I Been Pwned breach corpus.

    Uses the k-anonymity range API: only the first five hex characters of the
    SHA-1 of the password leave this process. Network failures are not
    swallowed, a password we could not check is not a password we accept.
    """

    def __init__(self, timeout: float = PWNED_PASSWORDS_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout

    def validate(self, password: str, user: object | None = None) -> None:
        digest = hashlib.sha1(password.encode("utf-8"), usedforsecurity=False).hexdigest().upper()
        prefix, suffix = digest[:5], digest[5:]

        # padding adds fake zero count entries so the response size says nothing
        response = requests.get(
            PWNED_PASSWORDS_RANGE_URL.format(prefix=prefix),
            headers={"Add-Padding": "true"},
            timeout=self.timeout,
        )
        response.raise_for_status()

        for line in response.text.splitlines():
            hash_suffix, _, count = line.strip().partition(":")
            if hash_suffix == suffix and count.strip() not in ("", "0"):
                raise ValidationError(self.get_error_message(), code="password_pwned")

    def get_error_message(self) -> str:
        return "This password has appeared in a data breach."

    def get_help_text(self) -> str:
        return "Your password cannot be one that has appeared in a known data breach."
