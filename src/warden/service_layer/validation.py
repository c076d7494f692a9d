"""ABOUTME: Input checks shared by the service layer
ABOUTME: Turns domain ValueErrors into InvalidInput and the strength policy result into PasswordTooWeak"""

from warden.domain import value_objects

from .exceptions import InvalidInput, PasswordTooWeak
from .security import validate_password_strength


def require_valid_email(email: str) -> None:
    try:
        value_objects.validate_email(email)
    except ValueError as error:
        raise InvalidInput(str(error)) from error


def require_valid_password(password: str) -> None:
    try:
        value_objects.validate_password_input(password)
    except ValueError as error:
        raise InvalidInput(str(error)) from error


def require_non_empty(value: str, name: str) -> None:
    if not value:
        raise InvalidInput(f"{name} is required")


def require_strong_password(password: str, check_pwned: bool = False) -> None:
    is_valid, error_msg = validate_password_strength(password, check_pwned=check_pwned)
    if not is_valid:
        raise PasswordTooWeak(error_msg)
