"""Pytest configuration and shared fixtures for CyberShield tests."""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

from fastapi.testclient import TestClient
from jose import jwt

from app.config import Settings
from app.database import create_engine, create_session_factory, init_db
from app.lifecycle import IncidentLifecycleManager
from app.main import create_app
from app.models import Administrator, Reporter

TEST_SECRET = "test-secret-key-for-cybershield"


# ============================================================================
# Settings / Tokens
# ============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    """
    Provides settings pointing at a throwaway SQLite database.

    Returns:
        Settings: Rate limiting disabled, logs written under tmp_path
    """
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        secret_key=TEST_SECRET,
        allowed_hosts=["testserver", "localhost"],
        log_dir=str(tmp_path / "logs"),
        rate_limit_enabled=False,
    )


@pytest.fixture
def make_token() -> Callable[..., str]:
    """
    Provides a factory minting bearer tokens the way the auth provider does.

    Returns:
        Callable: make_token(sub, role="user", **claims) -> str
    """
    def _make_token(sub: str, role: str = "user", secret: str = TEST_SECRET, **claims) -> str:
        payload = {
            "sub": sub,
            "role": role,
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
        }
        payload.update(claims)
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token) -> Callable[..., Dict[str, str]]:
    def _auth_headers(sub: str, role: str = "user", **claims) -> Dict[str, str]:
        return {"Authorization": f"Bearer {make_token(sub, role, **claims)}"}

    return _auth_headers


@pytest.fixture
def reporter_headers(auth_headers) -> Dict[str, str]:
    return auth_headers("U1", email="u1@cybershield.org", name="Una Reporter")


@pytest.fixture
def other_reporter_headers(auth_headers) -> Dict[str, str]:
    return auth_headers("U2", email="u2@cybershield.org", name="Ulf Reporter")


@pytest.fixture
def admin_headers(auth_headers) -> Dict[str, str]:
    return auth_headers(
        "A1",
        role="admin",
        email="a1@cybershield.org",
        name="Ada Officer",
        badge_number="B-1001",
        department="Cyber Crime Unit",
    )


# ============================================================================
# Application
# ============================================================================


@pytest.fixture
def client(settings):
    """
    Provides a TestClient with the lifespan running (tables created).

    Yields:
        TestClient: Client bound to a fresh application instance
    """
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
def incident_payload() -> Dict[str, str]:
    return {
        "title": "Phishing email",
        "description": "Received fake bank email",
        "category": "phishing",
        "severity": "low",
    }


@pytest.fixture
def reported_incident(client, reporter_headers, incident_payload) -> Dict:
    """A pending incident reported by U1 through the API."""
    response = client.post("/api/incidents", json=incident_payload, headers=reporter_headers)
    assert response.status_code == 201
    return response.json()


# ============================================================================
# Lifecycle manager against a real database
# ============================================================================


@pytest.fixture
def reporter() -> Reporter:
    return Reporter(id="U1", email="u1@cybershield.org", name="Una Reporter")


@pytest.fixture
def other_reporter() -> Reporter:
    return Reporter(id="U2", email="u2@cybershield.org", name="Ulf Reporter")


@pytest.fixture
def admin() -> Administrator:
    return Administrator(
        id="A1",
        email="a1@cybershield.org",
        name="Ada Officer",
        badge_number="B-1001",
        department="Cyber Crime Unit",
    )


@pytest_asyncio.fixture
async def db_session(settings):
    """
    Provides an AsyncSession on a freshly created schema.

    Yields:
        AsyncSession: Session that is closed and disposed after the test
    """
    engine = create_engine(settings.database_url)
    await init_db(engine)
    session_factory = create_session_factory(engine)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def manager(db_session) -> IncidentLifecycleManager:
    return IncidentLifecycleManager.from_session(db_session, ip_address="127.0.0.1")
