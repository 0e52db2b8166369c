"""
Pytest configuration and shared fixtures for PiggyBank tests.

This file is automatically loaded by pytest and provides:
    - Test settings and an in-memory SQLite database
    - A FastAPI TestClient bound to a fresh app per test
    - Helpers for registering users and authenticating requests
"""

import pytest
import sys
from pathlib import Path
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import Settings  # noqa: E402
from database import configure_database, init_db, drop_db, SessionLocal  # noqa: E402
from models import User  # noqa: E402
from auth import hash_password  # noqa: E402
from main import create_app  # noqa: E402
from services.observability import metrics  # noqa: E402


TEST_JWT_SECRET = "test-secret-for-pytest-only-0123456789abcdef"


# =============================================================================
# Settings & Database Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Settings for an isolated in-memory test run."""
    return Settings(
        _env_file=None,
        environment="test",
        database_url="sqlite://",
        jwt_secret=TEST_JWT_SECRET,
        openai_api_key=None,
        log_dir=None,
        rate_limit_max_requests=1000,
        chat_rate_limit_per_minute=5,
    )


@pytest.fixture
def db(settings):
    """A session on a freshly created in-memory database."""
    configure_database(settings.database_url)
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        drop_db()


@pytest.fixture
def make_user(db):
    """Factory that inserts a user directly into the database."""
    counter = {"n": 0}

    def _make_user(phone=None, name=None, email=None, password="password123"):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            password_hash=hash_password(password),
            name=name or f"User {counter['n']}",
            phone=phone,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


# =============================================================================
# API Fixtures
# =============================================================================

@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    """TestClient with the lifespan (table creation) running."""
    with TestClient(app) as test_client:
        yield test_client
    drop_db()


@pytest.fixture
def register(client):
    """Register a user through the API and return (auth headers, user dict)."""
    counter = {"n": 0}

    def _register(phone=None, email=None, password="password123", name=None):
        counter["n"] += 1
        response = client.post("/api/auth/register", json={
            "email": email or f"api-user{counter['n']}@example.com",
            "password": password,
            "name": name or f"API User {counter['n']}",
            "phone": phone,
        })
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        return {"Authorization": f"Bearer {data['token']}"}, data["user"]

    return _register


@pytest.fixture
def auth_headers(register):
    headers, _ = register(phone="+15550100999")
    return headers


# =============================================================================
# AI Service Fixtures
# =============================================================================

@pytest.fixture
def mock_ai_service():
    """Create a mock AI service with no API key."""
    service = MagicMock()
    service.client = None
    service.available = False

    async def mock_insights(context):
        return []

    service.generate_financial_insights = mock_insights

    return service


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-global; start every test from zero."""
    metrics.reset()
    yield
