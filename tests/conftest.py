import os
import tempfile

# Configure the environment before any crm module reads settings.
_test_tmp_dir = tempfile.mkdtemp(prefix="crm_test_")
os.environ.setdefault("LOG_FILE_PATH", "")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_tmp_dir}/crm.sqlite")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from crm.core.config import Settings, settings  # noqa: E402
from crm.db.database import init_db  # noqa: E402
from crm.main import create_app  # noqa: E402
from crm.repositories.token_store import (  # noqa: E402
    InMemoryRefreshTokenStore,
    SqliteRefreshTokenStore,
)
from crm.services.session_service import SessionIssuer  # noqa: E402
from crm.services.token_rotation import TokenRotator  # noqa: E402

ACCESS_SECRET = "access-secret-for-tests-only-0123456789"
REFRESH_SECRET = "refresh-secret-for-tests-only-9876543210"
PASSWORD = "Password123"


class FakeClock:
    """Manually advanced clock returning unix seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def database_url(tmp_path, monkeypatch):
    """Give every test its own SQLite file, also used as the global default."""
    url = f"sqlite:///{tmp_path}/crm.sqlite"
    monkeypatch.setattr(settings, "DATABASE_URL", url)
    init_db(url)
    return url


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(database_url):
    return Settings(
        DATABASE_URL=database_url,
        ACCESS_TOKEN_SECRET=ACCESS_SECRET,
        REFRESH_TOKEN_SECRET=REFRESH_SECRET,
        ACCESS_TOKEN_EXPIRE_MINUTES=15,
        REFRESH_TOKEN_EXPIRE_DAYS=7,
        ENVIRONMENT="development",
        LOG_FILE_PATH="",
    )


@pytest.fixture
def store():
    return InMemoryRefreshTokenStore()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, database_url):
    """Each refresh token store implementation in turn."""
    if request.param == "memory":
        return InMemoryRefreshTokenStore()
    return SqliteRefreshTokenStore(database_url)


@pytest.fixture
def roles():
    """Stand-in user directory for rotation tests: owner id -> role."""
    return {1: "user", 2: "user", 5: "user", 7: "admin"}


@pytest.fixture
def issuer(store, config, clock):
    return SessionIssuer(store, config, clock)


@pytest.fixture
def rotator(store, config, clock, roles, issuer):
    return TokenRotator(store, resolve_role=roles.get, config=config, clock=clock, issuer=issuer)


@pytest.fixture
def app(config, store, clock):
    return create_app(config=config, token_store=store, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register(client):
    """Register a user through the API and return the response."""
    def _register(username="alice", email="alice@example.com", password=PASSWORD):
        response = client.post(
            "/api/v1/auth/register",
            json={"username": username, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text
        return response

    return _register
