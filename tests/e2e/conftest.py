import pytest
from flask import Flask
from flask.testing import FlaskClient

from warden.bootstrap import Warden
from warden.entrypoints.flask_app import create_app

SHARED_SECRET = "e2e-shared-secret"  # pragma: allowlist secret


@pytest.fixture
def app(sqlite_session_factory, limits):
    """Create test Flask application on top of the SQLite test database."""
    app = create_app("testing", app_warden=Warden(session_factory=sqlite_session_factory, limits=limits))
    app.config["WARDEN_SECRET"] = SHARED_SECRET
    return app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()


class ApiClient:
    """Test client that sends the shared secret with every request."""

    def __init__(self, client: FlaskClient) -> None:
        self.client = client

    def open(self, path: str, method: str, headers: dict | None = None, **kwargs):
        all_headers = {"Authorization": SHARED_SECRET, **(headers or {})}
        return self.client.open(path, method=method, headers=all_headers, **kwargs)

    def get(self, path: str, **kwargs):
        return self.open(path, "GET", **kwargs)

    def post(self, path: str, **kwargs):
        return self.open(path, "POST", **kwargs)

    def delete(self, path: str, **kwargs):
        return self.open(path, "DELETE", **kwargs)


@pytest.fixture
def api(client: FlaskClient) -> ApiClient:
    return ApiClient(client)
