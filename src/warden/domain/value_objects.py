"""ABOUTME: Value objects shared by warden domain records
ABOUTME: Random identifiers and one-time codes, plus the input shape checks for emails and passwords"""

import base64
import secrets
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.core.validators import EmailValidator

# Base32 alphabets with the easily confused characters removed.
_STANDARD_BASE32 = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
ID_ALPHABET = "abcdefghijkmnpqrstuvwxyz23456789"
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_ID_TRANSLATION = str.maketrans(_STANDARD_BASE32, ID_ALPHABET)
_CODE_TRANSLATION = str.maketrans(_STANDARD_BASE32, CODE_ALPHABET)

ID_BYTES = 15
CODE_BYTES = 5

MAX_EMAIL_LENGTH = 255
MAX_PASSWORD_LENGTH = 127

REQUEST_LIFETIME = timedelta(minutes=10)


def _encode(random_bytes: bytes, translation: dict[int, int]) -> str:
    # byte counts are multiples of 5, so there is never any padding
    return base64.b32encode(random_bytes).decode("ascii").translate(translation)


def generate_id() -> str:
    """Generate a 120 bit random identifier as 24 lower-case base32 characters."""
    return _encode(secrets.token_bytes(ID_BYTES), _ID_TRANSLATION)


def generate_code() -> str:
    """Generate an 8 character one-time code for email verification and password reset."""
    return _encode(secrets.token_bytes(CODE_BYTES), _CODE_TRANSLATION)


def generate_recovery_code() -> str:
    return generate_code()


def validate_email(email: str) -> None:
    """Basic email validation."""
    if not email or len(email) > MAX_EMAIL_LENGTH:
        raise ValueError("Invalid email address")
    # Passing in the message stops Django from trying to localise the default one.
    validator = EmailValidator(message="Invalid email address")
    try:
        validator(email)
    except ValidationError as error:
        raise ValueError("Invalid email address") from error


def validate_password_input(password: str) -> None:
    """Shape check only. The strength policy lives in the service layer."""
    if not password:
        raise ValueError("Password is empty")
    if len(password) > MAX_PASSWORD_LENGTH:
        raise ValueError(f"Password is longer than {MAX_PASSWORD_LENGTH} characters")
