"""
Tests for request authentication.

Tests cover:
- Missing, malformed and wrongly signed tokens (401)
- Token expiry
- ensure_correct_user against a route username parameter
"""

from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from messagely.auth import CorrectUser, create_access_token, decode_username
from messagely.config import settings


class TestTokens:
    """Test token signing and decoding."""

    def test_round_trip(self):
        """Test a freshly issued token decodes to its username."""
        assert decode_username(create_access_token("alice")) == "alice"

    def test_wrong_key_rejected(self):
        """Test a token signed with another key is rejected."""
        token = jwt.encode({"username": "alice"}, "other-key", algorithm=settings.JWT_ALGORITHM)
        assert decode_username(token) is None

    def test_expired_token_rejected(self):
        """Test an expired token is rejected."""
        token = create_access_token("alice", expires_delta=timedelta(seconds=-1))
        assert decode_username(token) is None

    def test_missing_username_claim_rejected(self):
        """Test a valid signature without a username claim is rejected."""
        token = jwt.encode({"sub": "alice"}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
        assert decode_username(token) is None

    def test_garbage_rejected(self):
        """Test a non-JWT string is rejected."""
        assert decode_username("not-a-token") is None


class TestLoginGate:
    """Test the login requirement on message routes."""

    @pytest.mark.parametrize("headers", [
        {},
        {"Authorization": "Bearer not-a-token"},
        {"Authorization": "Basic YWxpY2U6c2VjcmV0"},
    ])
    def test_rejected_credentials(self, client, users, headers):
        """Test missing or invalid credentials return 401."""
        response = client.get("/messages/1", headers=headers)

        assert response.status_code == 401
        assert response.json() == {"detail": "Unauthorized"}

    def test_auth_runs_before_store(self, client, users):
        """Test an unauthenticated request for a missing id is 401, not 404."""
        response = client.post("/messages/9999/read")
        assert response.status_code == 401


class TestCorrectUser:
    """Test ensure_correct_user against a route with a username parameter."""

    @pytest.fixture
    def user_client(self):
        probe = FastAPI()

        @probe.get("/users/{username}/inbox")
        async def inbox(username: str, caller: CorrectUser):
            return {"caller": caller}

        @probe.get("/things/{thing_id}")
        async def thing(thing_id: int, caller: CorrectUser):
            return {"caller": caller}

        return TestClient(probe)

    def test_matching_username_passes(self, user_client, headers_for):
        response = user_client.get("/users/alice/inbox", headers=headers_for("alice"))

        assert response.status_code == 200
        assert response.json() == {"caller": "alice"}

    def test_differing_username_rejected(self, user_client, headers_for):
        response = user_client.get("/users/bob/inbox", headers=headers_for("alice"))
        assert response.status_code == 401

    def test_route_without_username_only_needs_login(self, user_client, headers_for):
        response = user_client.get("/things/1", headers=headers_for("alice"))

        assert response.status_code == 200
        assert response.json() == {"caller": "alice"}

    def test_still_requires_login(self, user_client):
        response = user_client.get("/things/1")
        assert response.status_code == 401
