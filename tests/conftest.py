"""
Pytest configuration and shared fixtures.

Test environment variables are set here, before any app import, and the
settings cache is cleared so they take effect.
"""

import os

import pytest

# In-memory database shared through one connection; nothing is left on disk
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from messagely.config import get_settings  # noqa: E402
get_settings.cache_clear()

from fastapi.testclient import TestClient  # noqa: E402

from messagely import models  # noqa: E402,F401
from messagely.auth import create_access_token  # noqa: E402
from messagely.main import app  # noqa: E402
from messagely.models import User  # noqa: E402
from messagely.storage import SessionLocal, Base, engine  # noqa: E402


USERS = [
    ("alice", "Alice", "Anderson", "+14155550100"),
    ("bob", "Bob", "Brown", "+14155550101"),
    ("carol", "Carol", "Clark", "+14155550102"),
]


def auth_headers(username: str) -> dict:
    """Authorization header for a token issued to username."""
    return {"Authorization": f"Bearer {create_access_token(username)}"}


@pytest.fixture
def headers_for():
    """Build Authorization headers for a username."""
    return auth_headers


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def users(client):
    """Seed alice, bob and carol."""
    with SessionLocal() as db:
        for username, first_name, last_name, phone in USERS:
            db.add(User(username=username, first_name=first_name, last_name=last_name, phone=phone))
        db.commit()
    return [u[0] for u in USERS]


@pytest.fixture
def send(client, users):
    """Send a message via the API and return the response's message dict."""
    def _send(from_username: str, to_username: str, body: str) -> dict:
        response = client.post(
            "/messages/",
            json={"to_username": to_username, "body": body},
            headers=auth_headers(from_username),
        )
        assert response.status_code == 201, response.text
        return response.json()["message"]
    return _send
