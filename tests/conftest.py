"""Shared fixtures: in-memory workspaces and Flask test clients."""

import pytest
from cryptography.fernet import Fernet

from app import create_app
from config import Config
from store import MemoryStore
from workspace import Workspace

ADMIN_EMAIL = "admin@example.com"
VIEWER_EMAIL = "johndoe@example.com"
PASSWORD = "password123"


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STORE_BACKEND = "memory"
    ENCRYPTION_KEY = Fernet.generate_key().decode("utf-8")
    LOG_LEVEL = "WARNING"


class SQLTestingConfig(TestingConfig):
    STORE_BACKEND = "sql"


class ApiClient:
    """Test client that sends the session CSRF token with every POST."""

    def __init__(self, client):
        self.client = client
        self.token = client.get("/csrf-token").get_json()["csrf_token"]

    def get(self, url, **kwargs):
        return self.client.get(url, **kwargs)

    def post(self, url, **kwargs):
        headers = dict(kwargs.pop("headers", {}))
        headers["X-CSRF-Token"] = self.token
        return self.client.post(url, headers=headers, **kwargs)

    def login(self, email=ADMIN_EMAIL, password=PASSWORD):
        return self.post("/login", json={"email": email, "password": password})


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def workspace(store):
    return Workspace(store)


@pytest.fixture
def admin_workspace(workspace):
    assert workspace.session.login(ADMIN_EMAIL, PASSWORD) is not None
    return workspace


@pytest.fixture
def app():
    return create_app(TestingConfig)


@pytest.fixture
def sql_app():
    app = create_app(SQLTestingConfig)
    with app.app_context():
        yield app


@pytest.fixture
def app_workspace(app):
    return app.extensions["docusafe"]


@pytest.fixture
def api(app):
    return ApiClient(app.test_client())


@pytest.fixture
def admin_api(api):
    assert api.login().status_code == 200
    return api
