"""ABOUTME: Configuration management for the warden auth service
ABOUTME: Loads environment variables and provides configuration objects for different environments"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class InvalidConfig(Exception):
    """Error for when the config is not valid"""


SQLITE_DB_URI = "sqlite:///:memory:"
DEFAULT_DATA_DIR = "warden_data"
DEFAULT_PORT = 4000


def to_bool(value: str | None, context_str: str = "") -> bool:
    """
    Convert string to boolean. Valid options (after stripping whitespace and making lower-case)
    - False: "false", "no", "off", "0", None, ""
    - True: "true", "yes", "on", "1"

    The `context_str` is there for the error message, to help find the issue.
    """
    if value is None:
        return False
    value = value.lower().strip()
    if value in ("false", "no", "off", "0", ""):
        return False
    if value in ("true", "yes", "on", "1"):
        return True
    raise ValueError(
        f"Cannot convert '{context_str}{value}' to boolean. "
        "Valid values are: true/false, 1/0, yes/no, on/off (case-insensitive)"
    )


def bool_environ_get(key: str, default: str = "") -> bool:
    return to_bool(os.environ.get(key, default), context_str=f"{key}=")


def get_env_name() -> str:
    return os.environ.get("WARDEN_ENV", "development").lower().strip()


def is_development() -> bool:
    return get_env_name() == "development"


def is_production() -> bool:
    return get_env_name() == "production"


def should_log_all_requests() -> bool:
    return bool_environ_get("LOG_ALL_REQUESTS")


def get_log_level() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper().strip()
    level = logging.getLevelNamesMapping().get(level_name)
    if level is None:
        raise InvalidConfig(f"Unknown LOG_LEVEL '{level_name}'")
    return level


def get_data_dir() -> Path:
    return Path(os.environ.get("DATA_DIR", DEFAULT_DATA_DIR))


def get_db_uri() -> str:
    """Database URL, defaulting to a SQLite file inside DATA_DIR."""
    if db_uri := os.environ.get("DB_URI"):
        return db_uri
    return f"sqlite:///{get_data_dir() / 'sqlite.db'}"


def get_shared_secret() -> str:
    return os.environ.get("WARDEN_SECRET", "")


def get_totp_encryption_key() -> bytes:
    """Master key used to derive the per-user keys that encrypt TOTP secrets at rest.

    Raises:
        InvalidConfig: if TOTP_ENCRYPTION_KEY is missing or not 32 bytes of base64
    """
    encoded_key = os.environ.get("TOTP_ENCRYPTION_KEY", "")
    if not encoded_key:
        raise InvalidConfig("TOTP_ENCRYPTION_KEY must be set")
    try:
        key = base64.b64decode(encoded_key, validate=True)
    except binascii.Error as error:
        raise InvalidConfig("TOTP_ENCRYPTION_KEY must be base64 encoded") from error
    if len(key) != 32:
        raise InvalidConfig("TOTP_ENCRYPTION_KEY must decode to 32 bytes")
    return key


@dataclass(slots=True, kw_only=True)
class MaintenanceCfg:
    rate_limit_clear_interval: timedelta
    cleanup_interval: timedelta

    @classmethod
    def from_env(cls) -> "MaintenanceCfg":
        # 240 hours = 10 days
        clear_hours = int(os.environ.get("RATE_LIMIT_CLEAR_INTERVAL_HOURS", "240"))
        cleanup_minutes = int(os.environ.get("CLEANUP_INTERVAL_MINUTES", "60"))
        if clear_hours <= 0 or cleanup_minutes <= 0:
            raise InvalidConfig("Maintenance intervals must be positive")
        return MaintenanceCfg(
            rate_limit_clear_interval=timedelta(hours=clear_hours),
            cleanup_interval=timedelta(minutes=cleanup_minutes),
        )


class FlaskBaseConfig:
    """Base configuration class that loads from environment variables."""

    TESTING = False
    JSON_SORT_KEYS = False

    def __init__(self) -> None:
        self.SQLALCHEMY_DATABASE_URI = get_db_uri()
        self.ENV_NAME: str = get_env_name()
        self.DEBUG: bool = bool_environ_get("DEBUG")
        self.PORT: int = int(os.environ.get("PORT", DEFAULT_PORT))
        self.DATA_DIR: Path = get_data_dir()
        self.WARDEN_SECRET: str = get_shared_secret()
        self.CHECK_PWNED_PASSWORDS: bool = bool_environ_get("CHECK_PWNED_PASSWORDS", "true")
        self.MAINTENANCE = MaintenanceCfg.from_env()


class FlaskConfig(FlaskBaseConfig):
    """Development configuration."""


class FlaskTestConfig(FlaskBaseConfig):
    """Test configuration that uses SQLite in-memory database."""

    TESTING = True

    def __init__(self) -> None:
        super().__init__()
        self.SQLALCHEMY_DATABASE_URI = SQLITE_DB_URI
        self.ENV_NAME = "testing"
        self.CHECK_PWNED_PASSWORDS = False


class FlaskProductionConfig(FlaskBaseConfig):
    """Production configuration with stricter defaults."""

    def __init__(self) -> None:
        super().__init__()
        self.ENV_NAME = "production"

        if not self.WARDEN_SECRET:
            raise InvalidConfig("WARDEN_SECRET must be set in production")
        # fail at start-up rather than on the first TOTP registration
        get_totp_encryption_key()


def get_config(config_name: str = "") -> FlaskBaseConfig:
    """Return the appropriate configuration based on WARDEN_ENV or config_name."""
    env = config_name.strip() or get_env_name()
    env = env.lower().strip()

    config_classes: dict[str, type[FlaskBaseConfig]] = {
        "development": FlaskConfig,
        "testing": FlaskTestConfig,
        "production": FlaskProductionConfig,
    }

    # Fall back to development if unknown config
    config_cls = config_classes.get(env, FlaskConfig)
    return config_cls()
