"""ABOUTME: Security utilities for password hashing and password strength checks
ABOUTME: Argon2id hashing with fixed cost parameters and Django based strength validation"""

import functools
from collections.abc import Iterable

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError

from warden.service_layer import password_validation as pv
from warden.service_layer.exceptions import InvalidPasswordHash

ARGON2ID_PREFIX = "$argon2id$"
MIN_PASSWORD_LENGTH = 8

# memory is in KiB, so 19 MiB
password_hasher = PasswordHasher(
    time_cost=2,
    memory_cost=19456,
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=Type.ID,
)


def hash_password(password: str) -> str:
    """Hash a password with Argon2id.

    Returns the self describing encoded form, e.g. `$argon2id$v=19$m=19456,t=2,p=1$<salt>$<hash>`,
    so hashes made with older parameters can still be verified.
    """
    return password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its encoded Argon2id hash.

    Parameters come from the hash itself and the comparison is constant time.

    Raises:
        InvalidPasswordHash: if the hash is not an Argon2id hash or cannot be parsed
    """
    if not password_hash.startswith(ARGON2ID_PREFIX):
        raise InvalidPasswordHash("Unsupported password hash algorithm")
    try:
        return password_hasher.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except InvalidHashError as error:
        raise InvalidPasswordHash("Could not parse password hash") from error
    except VerificationError:
        # any other failure from libargon2 means the hash did not verify
        return False


# Reset codes are stored like passwords, since the request record is handed back to callers.
hash_code = hash_password
verify_code = verify_password


@functools.cache
def _common_password_validator() -> pv.SafeCommonPasswordValidator:
    # loading the common password list reads a compressed file, so do it once
    return pv.SafeCommonPasswordValidator()


def get_password_validators(check_pwned: bool = False) -> Iterable[object]:
    validators: list[object] = [
        pv.MinimumLengthValidator(min_length=MIN_PASSWORD_LENGTH),
        _common_password_validator(),
        pv.NumericPasswordValidator(),
    ]
    if check_pwned:
        validators.append(pv.PwnedPasswordValidator())
    return validators


def validate_password_strength(password: str, check_pwned: bool = False) -> tuple[bool, str]:
    """
    Validate password strength requirements.

    Returns tuple of (is_valid, error_message)
    """
    # We use the well maintained Django password validation
    try:
        validate_password(password, user=None, password_validators=get_password_validators(check_pwned))
    except ValidationError as error:
        return False, " ".join(error.messages)

    return True, ""

