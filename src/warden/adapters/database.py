"""ABOUTME: Database connection setup and imperative mapping for warden
ABOUTME: Configures SQLAlchemy sessions, maps domain objects to tables and creates the schema"""

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import clear_mappers as sqla_clear_mappers
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from warden.adapters import orm
from warden.config import bool_environ_get, get_db_uri
from warden.domain import email_verification, password_reset, totp_credentials, users


class DatabaseError(Exception):
    """Base exception for database-related errors."""


def create_db_engine(database_url: str = "", echo: bool = False) -> Engine:
    database_url = database_url or get_db_uri()
    echo = bool_environ_get("DB_ECHO") or echo
    extra_args: dict[str, object] = {}
    if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        # make sure the data directory exists before SQLite tries to open the file
        Path(database_url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
        extra_args = {"connect_args": {"check_same_thread": False}}
    elif database_url == "sqlite:///:memory:":
        # share the one in-memory database between threads
        extra_args = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
    elif database_url.startswith("postgresql://"):
        extra_args = {
            "pool_pre_ping": True,  # Verify connections before use
            "pool_recycle": 3600,  # Recycle connections after 1 hour
        }
    return create_engine(database_url, echo=echo, **extra_args)


def create_session_factory(database_url: str = "", echo: bool = False) -> sessionmaker:
    """Create a SQLAlchemy session factory with proper configuration."""
    engine = create_db_engine(database_url, echo)
    return sessionmaker(bind=engine, expire_on_commit=False)


def create_tables(session_factory: sessionmaker) -> None:
    """Create any missing tables. Existing tables are left alone."""
    engine = session_factory.kw["bind"]
    orm.metadata.create_all(engine)


# Track if mappers have been started
_mappers_started = False


def start_mappers() -> None:
    """Start imperative mapping between domain objects and database tables.

    This function must be called before using any domain objects with SQLAlchemy.
    The mapping is done imperatively to keep domain objects independent of SQLAlchemy.
    """
    global _mappers_started

    if _mappers_started:
        return

    try:
        orm.mapper_registry.map_imperatively(users.User, orm.users)
        orm.mapper_registry.map_imperatively(
            email_verification.EmailVerificationRequest, orm.email_verification_requests
        )
        orm.mapper_registry.map_imperatively(password_reset.PasswordResetRequest, orm.password_reset_requests)
        orm.mapper_registry.map_imperatively(totp_credentials.TOTPCredential, orm.totp_credentials)

        _mappers_started = True

    except Exception as e:  # pragma: no cover
        raise DatabaseError(f"Failed to start mappers: {e}") from e


def clear_mappers() -> None:
    sqla_clear_mappers()

    global _mappers_started
    _mappers_started = False
