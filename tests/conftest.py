"""ABOUTME: Pytest configuration and fixtures for warden tests
ABOUTME: Provides environment, database, clock and rate limiter fixtures for unit, integration, and e2e tests"""

import base64
import os

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tests.fakes import FakeClock, FakeUnitOfWork
from warden.adapters import database, orm
from warden.config import FlaskTestConfig
from warden.service_layer.rate_limits import create_rate_limits

TEST_TOTP_ENCRYPTION_KEY = base64.b64encode(b"k" * 32).decode("ascii")


@pytest.fixture(scope="session")
def test_config():
    """Provide test configuration for the entire test session."""
    os.environ["WARDEN_ENV"] = "testing"
    return FlaskTestConfig()


@pytest.fixture(autouse=True)
def set_test_env():
    """Automatically set test environment for all tests."""
    test_values = {
        "WARDEN_ENV": "testing",
        "TOTP_ENCRYPTION_KEY": TEST_TOTP_ENCRYPTION_KEY,
        "CHECK_PWNED_PASSWORDS": "false",
    }
    original_env = {key: os.environ.get(key) for key in test_values}
    os.environ.update(test_values)
    yield
    for key, value in original_env.items():
        if value is not None:
            os.environ[key] = value
        else:
            os.environ.pop(key, None)


@pytest.fixture
def clear_env_vars():
    """Fixture to temporarily remove environment variables for testing."""
    original_vars = {}

    def _clear_env_vars(*args):
        for key in args:
            original_vars[key] = os.environ.get(key)
            os.environ.pop(key, None)

    yield _clear_env_vars

    # Restore original environment variables
    for key, value in original_vars.items():
        if value is not None:
            os.environ[key] = value


@pytest.fixture
def temp_env_vars():
    """Fixture to temporarily set environment variables for testing."""
    original_vars = {}

    def _set_env_vars(**kwargs):
        for key, value in kwargs.items():
            original_vars.setdefault(key, os.environ.get(key))
            os.environ[key] = value

    yield _set_env_vars

    # Restore original environment variables
    for key, value in original_vars.items():
        if value is not None:
            os.environ[key] = value
        else:
            os.environ.pop(key, None)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def limits(fake_clock):
    """A fresh set of rate limiters per test, all driven by the fake clock."""
    return create_rate_limits(clock=fake_clock)


@pytest.fixture
def uow():
    return FakeUnitOfWork()


@pytest.fixture
def mappers():
    database.start_mappers()
    yield
    database.clear_mappers()


@pytest.fixture
def in_memory_sqlite_db():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    return engine


@pytest.fixture
def sqlite_session_factory(in_memory_sqlite_db):
    orm.metadata.create_all(in_memory_sqlite_db)
    database.start_mappers()

    yield sessionmaker(bind=in_memory_sqlite_db, expire_on_commit=False)

    database.clear_mappers()
    orm.metadata.drop_all(in_memory_sqlite_db)


@pytest.fixture
def cli_with_session_factory(sqlite_session_factory):
    """Fixture that provides a Click runner with test session factory in context."""

    def _invoke_cli_with_context(cli_command, args, **kwargs):
        """Helper to invoke CLI commands with test session factory in context."""
        runner = CliRunner()

        # Create context object with our test session factory
        ctx_obj = {"session_factory": sqlite_session_factory}

        # Invoke with the context object
        return runner.invoke(cli_command, args, obj=ctx_obj, **kwargs)

    return _invoke_cli_with_context
