"""ABOUTME: TOTP service for two-factor authentication core functions
ABOUTME: Handles key encryption at rest, credential registration, and code verification with lockout"""

import base64
import logging
from datetime import UTC, datetime, timedelta

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from warden.config import get_totp_encryption_key
from warden.domain.totp_credentials import TOTPCredential

from . import otp
from .exceptions import IncorrectCode, InvalidInput, NotAllowed, NotFoundError, RateLimitExceeded
from .rate_limits import RateLimits, consume_or_raise
from .unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

TOTP_KEY_LENGTH = 20
TOTP_INTERVAL = timedelta(seconds=30)
TOTP_DIGITS = 6
TOTP_GRACE = timedelta(seconds=10)


def derive_user_encryption_key(master_key: bytes, user_id: str) -> bytes:
    """Derive a user-specific encryption key from the master key using HKDF.

    This ensures each user has a different encryption key even with the same master key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"warden-totp-encryption",
        info=user_id.encode("utf-8"),
    )
    return hkdf.derive(master_key)


def _fernet_for_user(user_id: str) -> Fernet:
    user_key = derive_user_encryption_key(get_totp_encryption_key(), user_id)
    # Fernet requires a base64-encoded 32-byte key
    return Fernet(base64.urlsafe_b64encode(user_key))


def encrypt_totp_key(key: bytes, user_id: str) -> str:
    """Encrypt a raw TOTP key for storage.

    Args:
        key: The raw shared secret
        user_id: The user's id for key derivation

    Returns:
        Fernet token as text
    """
    return _fernet_for_user(user_id).encrypt(key).decode("ascii")


def decrypt_totp_key(encrypted_key: str, user_id: str) -> bytes:
    return _fernet_for_user(user_id).decrypt(encrypted_key.encode("ascii"))


def check_totp_code(key: bytes, code: str, now: datetime | None = None) -> bool:
    """Check a 6 digit, 30 second code, tolerating 10 seconds of clock drift either way."""
    return otp.verify_totp_with_grace(
        now or datetime.now(UTC), key, TOTP_INTERVAL, TOTP_DIGITS, code, TOTP_GRACE
    )


def register_totp_credential(uow: AbstractUnitOfWork, user_id: str, key: bytes, code: str) -> TOTPCredential:
    """
    Register an authenticator for a user, replacing any earlier one.

    The caller proves the authenticator was set up by sending a current code for the key.

    Args:
        uow: Unit of Work for database operations
        user_id: ID of the user
        key: the raw 20 byte shared secret
        code: a code the authenticator currently shows

    Raises:
        InvalidInput: If the key is not 20 bytes or no code was given
        NotFoundError: If there is no such user
        IncorrectCode: If the code does not match the key
    """
    if len(key) != TOTP_KEY_LENGTH:
        raise InvalidInput(f"TOTP key must be {TOTP_KEY_LENGTH} bytes")
    if not code:
        raise InvalidInput("code is required")

    with uow:
        if not uow.users.get(user_id):
            raise NotFoundError(f"User {user_id} not found")

        if not check_totp_code(key, code):
            logger.info(f"Incorrect code while registering TOTP for user {user_id}")
            raise IncorrectCode()

        credential = uow.totp_credentials.upsert(
            TOTPCredential(user_id=user_id, encrypted_key=encrypt_totp_key(key, user_id))
        )
        uow.commit()

        logger.info(f"Registered TOTP credential for user {user_id}")
        return credential.create_detached_copy()


def get_totp_credential(uow: AbstractUnitOfWork, user_id: str) -> tuple[bytes, TOTPCredential]:
    """Returns the decrypted key together with the stored credential."""
    with uow:
        credential = uow.totp_credentials.get(user_id)
        if credential is None:
            raise NotFoundError("No TOTP credential registered")
        return decrypt_totp_key(credential.encrypted_key, user_id), credential.create_detached_copy()


def has_totp_credential(uow: AbstractUnitOfWork, user_id: str) -> bool:
    with uow:
        return uow.totp_credentials.get(user_id) is not None


def delete_totp_credential(uow: AbstractUnitOfWork, user_id: str) -> None:
    with uow:
        if not uow.totp_credentials.delete_for_user(user_id):
            raise NotFoundError("No TOTP credential registered")
        uow.commit()
    logger.info(f"Deleted TOTP credential for user {user_id}")


def verify_totp(uow: AbstractUnitOfWork, limits: RateLimits, user_id: str, code: str) -> None:
    """
    Check a TOTP code of a user with a registered authenticator.

    5 wrong codes per 15 minutes lock the user out. A correct code resets the count.

    Raises:
        InvalidInput: If no code was given
        NotAllowed: If the user has no TOTP credential
        RateLimitExceeded: If the user is locked out
        IncorrectCode: If the code is wrong
    """
    if not code:
        raise InvalidInput("code is required")

    with uow:
        credential = uow.totp_credentials.get(user_id)
        if credential is None:
            raise NotAllowed("User has no second factor registered")
        key = decrypt_totp_key(credential.encrypted_key, user_id)

    try:
        consume_or_raise(limits.totp_verify, user_id, "TOTP verification")
    except RateLimitExceeded:
        logger.warning(f"TOTP verification locked out for user {user_id}")
        raise

    if not check_totp_code(key, code):
        raise IncorrectCode()
    limits.totp_verify.reset(user_id)
