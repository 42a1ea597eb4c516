"""
Tests for authentication endpoints and caller identity resolution.

Tests cover:
- Registration (always MEMBER, duplicate email)
- Login and /me
- 401 for missing, malformed, wrong-type and orphaned tokens
"""

import logging
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import models
from auth.security import create_access_token
from tests.conftest import TEST_PASSWORD, create_auth_token

logger = logging.getLogger(__name__)


def test_register_creates_member(client: TestClient):
    response = client.post(
        "/api/auth/register",
        json={"name": "New User", "email": "new@test.com", "password": "longenough1"},
    )

    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.json()}"
    data = response.json()
    assert data["role"] == "MEMBER"
    assert data["email"] == "new@test.com"
    assert "password_hash" not in data


def test_register_ignores_requested_role(client: TestClient):
    response = client.post(
        "/api/auth/register",
        json={"name": "Sneaky", "email": "sneaky@test.com", "password": "longenough1", "role": "ADMIN"},
    )

    assert response.status_code == 201
    assert response.json()["role"] == "MEMBER"


def test_register_duplicate_email(client: TestClient, member_user: models.User):
    response = client.post(
        "/api/auth/register",
        json={"name": "Dup", "email": member_user.email, "password": "longenough1"},
    )

    assert response.status_code == 409, f"Expected 409, got {response.status_code}: {response.json()}"


def test_register_short_password_rejected(client: TestClient):
    response = client.post(
        "/api/auth/register",
        json={"name": "Short", "email": "short@test.com", "password": "abc"},
    )

    assert response.status_code == 422


def test_login_and_me(client: TestClient, manager_user: models.User):
    response = client.post("/api/auth/login", json={"email": manager_user.email, "password": TEST_PASSWORD})

    assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.json()}"
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["id"] == manager_user.id

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["role"] == "MANAGER"
    logger.info("✓ Login issued a working access token")


def test_login_wrong_password(client: TestClient, member_user: models.User):
    response = client.post("/api/auth/login", json={"email": member_user.email, "password": "wrong-password"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_login_unknown_email(client: TestClient):
    response = client.post("/api/auth/login", json={"email": "nobody@test.com", "password": TEST_PASSWORD})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password"


def test_missing_token_is_401(client: TestClient):
    response = client.get("/api/tasks")

    assert response.status_code == 401
    assert response.headers.get("www-authenticate") == "Bearer"


def test_garbage_token_is_401(client: TestClient):
    response = client.get("/api/tasks", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


def test_expired_token_is_401(client: TestClient, member_user: models.User):
    token = create_auth_token(member_user, expires_delta=timedelta(minutes=-1))
    response = client.get("/api/tasks", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_non_numeric_subject_is_401(client: TestClient):
    token = create_access_token({"sub": "abc"})
    response = client.get("/api/tasks", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token payload"


def test_token_for_missing_user_is_401(client: TestClient):
    token = create_access_token({"sub": "999"})
    response = client.get("/api/tasks", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "User not found"


def test_stored_role_wins_over_token_claim(client: TestClient, member_user: models.User):
    """A token claiming ADMIN does not grant admin access to a MEMBER."""
    token = create_access_token({"sub": str(member_user.id), "role": "ADMIN"})
    response = client.get("/api/users", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 403


def test_demoted_user_loses_access_immediately(
    client: TestClient, test_db: Session, manager_user: models.User
):
    headers = {"Authorization": f"Bearer {create_auth_token(manager_user)}"}
    assert client.post("/api/projects", json={"name": "Before"}, headers=headers).status_code == 201

    manager_user.role = models.UserRole.MEMBER
    test_db.commit()

    response = client.post("/api/projects", json={"name": "After"}, headers=headers)
    assert response.status_code == 403


def test_health(client: TestClient):
    assert client.get("/health").json() == {"status": "healthy"}
