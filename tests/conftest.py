"""
Pytest fixtures for certauth tests.

Provides an isolated session registry, an in-memory SQLite admin store,
an AuthService wired to both, and a TestClient for the full app.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from certauth.auth.events import SecurityEventBus
from certauth.auth.registry import SessionRegistry
from certauth.auth.service import AuthService
from certauth.core.settings import settings
from certauth.db.deps import get_db
from certauth.main import create_app
from certauth.models import Base

ADMIN_PASSWORD = "correct-horse-battery"


class MockAdmin:
    """Stand-in for AdminAccount where no database is needed."""

    def __init__(self, admin_no: int, username: str, email: str):
        self.admin_no = admin_no
        self.username = username
        self.email = email

    @property
    def owner_id(self) -> str:
        return str(self.admin_no)


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Cheap bcrypt and a fixed signing key for every test."""
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)
    monkeypatch.setattr(settings, "jwt_secret_key", "test-secret-key-for-certauth-tests")
    monkeypatch.setattr(settings, "allow_registration", True)
    monkeypatch.setattr(settings, "expose_reset_token", False)
    monkeypatch.setattr(settings, "session_sweep_interval_seconds", 0)
    monkeypatch.setattr(settings, "smtp_host", None)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def events():
    return SecurityEventBus()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def auth_service(db, registry, events):
    return AuthService(db, registry, events)


@pytest.fixture
def alice(auth_service):
    return auth_service.register_admin("alice", "alice@example.com", ADMIN_PASSWORD)


@pytest.fixture
def bob(auth_service):
    return auth_service.register_admin("bob", "bob@example.com", ADMIN_PASSWORD)


@pytest.fixture
def app(registry, events, engine, session_factory):
    app = create_app(registry=registry, events=events, engine=engine)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def login(client, identifier: str = "alice", password: str = ADMIN_PASSWORD) -> str:
    """Log in through the API and return the access token."""
    response = client.post(
        "/api/auth/login",
        json={"username": identifier, "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
