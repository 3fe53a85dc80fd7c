"""
Tests for authentication routes.

Tests registration, login, bearer tokens, password reset and the
current user's profile.
"""

import re
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from claimflow.models import utcnow
from claimflow.models.user import User
from claimflow.utils.auth import create_access_token

# Test password used in fixtures - must match conftest.py
TEST_PASSWORD = "testpassword123"


def html_body(message) -> str:
    return message.get_body(preferencelist=("html",)).get_content()


class TestRegistration:
    """Test suite for account creation."""

    def test_register_creates_user_and_emails_password(
        self, client: TestClient, db_session: Session, outbox: list
    ):
        response = client.post(
            "/auth/register",
            json={"username": "newuser", "email": "New.User@Example.com", "firstName": "New"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["username"] == "newuser"
        assert data["user"]["email"] == "new.user@example.com"
        assert data["user"]["role"] == "user"
        assert "passwordHash" not in data["user"]

        assert len(outbox) == 1
        assert outbox[0]["To"] == "new.user@example.com"

        user = db_session.query(User).filter(User.username == "newuser").first()
        assert user is not None
        assert user.first_name == "New"

    def test_temporary_password_allows_login(self, client: TestClient, outbox: list):
        client.post("/auth/register", json={"username": "temp", "email": "temp@example.com"})
        match = re.search(r"<strong>([0-9a-f]{16})</strong>", html_body(outbox[0]))
        assert match is not None

        response = client.post(
            "/auth/login", json={"email": "temp@example.com", "password": match.group(1)}
        )
        assert response.status_code == 200

    def test_register_duplicate_email(self, client: TestClient, employee: User, outbox: list):
        response = client.post(
            "/auth/register", json={"username": "someoneelse", "email": employee.email.upper()}
        )
        assert response.status_code == 409
        assert response.json() == {"message": "Email or username already exists.", "code": "CONFLICT"}
        assert outbox == []

    def test_register_duplicate_username(self, client: TestClient, employee: User, outbox: list):
        response = client.post(
            "/auth/register", json={"username": employee.username, "email": "fresh@example.com"}
        )
        assert response.status_code == 409

    def test_concurrent_duplicate_is_conflict(
        self, client: TestClient, employee: User, outbox: list, monkeypatch
    ):
        from claimflow.routes import auth

        # The uniqueness check passed before another request inserted the same account
        monkeypatch.setattr(auth, "unique_username", lambda db, username, exclude_id=None: True)
        monkeypatch.setattr(auth, "unique_email", lambda db, email, exclude_id=None: True)
        response = client.post(
            "/auth/register", json={"username": employee.username, "email": employee.email}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"
        assert outbox == []

    def test_register_invalid_email(self, client: TestClient, outbox: list):
        response = client.post("/auth/register", json={"username": "bad", "email": "not-an-email"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_elevated_role_requires_admin(self, client: TestClient, outbox: list):
        response = client.post(
            "/auth/register", json={"username": "boss", "email": "boss@example.com", "role": "admin"}
        )
        assert response.status_code == 403
        assert outbox == []

    def test_admin_can_register_editor(
        self, client: TestClient, admin_user: User, auth_headers, outbox: list
    ):
        response = client.post(
            "/auth/register",
            json={"username": "reviewer", "email": "reviewer@example.com", "role": "editor"},
            headers=auth_headers(admin_user),
        )
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "editor"

    def test_mail_failure_rolls_back_user(self, client: TestClient, db_session: Session, monkeypatch):
        from claimflow.utils import mailer

        def broken(message):
            raise ConnectionRefusedError("smtp down")

        monkeypatch.setattr(mailer, "deliver", broken)
        response = client.post("/auth/register", json={"username": "ghost", "email": "ghost@example.com"})
        assert response.status_code == 500
        assert response.json()["code"] == "SERVER_ERROR"
        assert db_session.query(User).filter(User.username == "ghost").first() is None


class TestLogin:
    """Test suite for login."""

    def test_login_with_valid_credentials(self, client: TestClient, employee: User):
        response = client.post("/auth/login", json={"email": employee.email, "password": TEST_PASSWORD})
        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Login successful!"
        assert data["user"]["id"] == employee.id
        assert data["user"]["lastLogin"] is not None

        profile = client.get("/auth/profile", headers={"Authorization": f"Bearer {data['token']}"})
        assert profile.status_code == 200
        assert profile.json()["user"]["username"] == employee.username

    def test_login_email_is_case_insensitive(self, client: TestClient, employee: User):
        response = client.post(
            "/auth/login", json={"email": employee.email.upper(), "password": TEST_PASSWORD}
        )
        assert response.status_code == 200

    @pytest.mark.parametrize(
        "email,password",
        [("employee@example.com", "wrongpassword"), ("nobody@example.com", TEST_PASSWORD)],
    )
    def test_login_with_invalid_credentials(self, client: TestClient, employee: User, email, password):
        response = client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 401
        assert response.json() == {"message": "Invalid email or password.", "code": "UNAUTHORIZED"}


class TestAccessToken:
    """Test suite for bearer token checks on protected routes."""

    def test_missing_token(self, client: TestClient):
        response = client.get("/auth/profile")
        assert response.status_code == 401
        assert response.json()["message"] == "Access token required."

    def test_garbage_token(self, client: TestClient):
        response = client.get("/auth/profile", headers={"Authorization": "Bearer not.a.token"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token."

    def test_expired_token(self, client: TestClient, employee: User):
        token = create_access_token(employee, expires_delta=timedelta(seconds=-10))
        response = client.get("/auth/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["message"] == "Token expired."

    def test_token_for_deleted_user(self, client: TestClient, db_session: Session, employee: User):
        headers = {"Authorization": f"Bearer {create_access_token(employee)}"}
        db_session.delete(employee)
        db_session.commit()
        response = client.get("/auth/profile", headers=headers)
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token."

    def test_role_checks_use_stored_role(
        self, client: TestClient, db_session: Session, employee: User, auth_headers
    ):
        headers = auth_headers(employee)
        employee.role = "admin"
        db_session.commit()
        response = client.get("/users", headers=headers)
        assert response.status_code == 200


class TestPasswordReset:
    """Test suite for forgot/reset password."""

    def test_unknown_email_gets_same_answer(self, client: TestClient, outbox: list):
        response = client.post("/auth/forgot-password", json={"email": "nobody@example.com"})
        assert response.status_code == 200
        assert response.json()["message"] == "If the email exists, a password reset link has been sent."
        assert outbox == []

    def test_reset_round_trip(self, client: TestClient, db_session: Session, employee: User, outbox: list):
        response = client.post("/auth/forgot-password", json={"email": employee.email})
        assert response.status_code == 200
        assert len(outbox) == 1

        match = re.search(r"token=([0-9a-f]{64})", html_body(outbox[0]))
        assert match is not None
        token = match.group(1)

        # Only the digest is stored
        db_session.refresh(employee)
        assert employee.reset_password_token != token

        response = client.post("/auth/reset-password", json={"token": token, "newPassword": "brandnew123"})
        assert response.status_code == 200
        assert response.json()["message"] == "Password reset successful!"

        login = client.post("/auth/login", json={"email": employee.email, "password": "brandnew123"})
        assert login.status_code == 200
        old = client.post("/auth/login", json={"email": employee.email, "password": TEST_PASSWORD})
        assert old.status_code == 401

        # Tokens are single use
        again = client.post("/auth/reset-password", json={"token": token, "newPassword": "another123"})
        assert again.status_code == 400
        assert again.json()["code"] == "INVALID_TOKEN"

    def test_expired_reset_token(self, client: TestClient, db_session: Session, employee: User, outbox: list):
        client.post("/auth/forgot-password", json={"email": employee.email})
        token = re.search(r"token=([0-9a-f]{64})", html_body(outbox[0])).group(1)

        employee.reset_password_expires = utcnow() - timedelta(minutes=1)
        db_session.commit()

        response = client.post("/auth/reset-password", json={"token": token, "newPassword": "brandnew123"})
        assert response.status_code == 400
        assert response.json() == {"message": "Invalid or expired reset token.", "code": "INVALID_TOKEN"}

    def test_reset_rejects_short_password(self, client: TestClient):
        response = client.post("/auth/reset-password", json={"token": "abc", "newPassword": "123"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestProfile:
    """Test suite for the current user's profile."""

    def test_update_profile(self, client: TestClient, employee: User, auth_headers):
        response = client.put(
            "/auth/profile",
            json={"firstName": "Jamie", "location": "Lisbon"},
            headers=auth_headers(employee),
        )
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["firstName"] == "Jamie"
        assert user["location"] == "Lisbon"
        assert user["username"] == "employee"

    def test_update_profile_username_taken(
        self, client: TestClient, employee: User, other_employee: User, auth_headers
    ):
        response = client.put(
            "/auth/profile",
            json={"username": other_employee.username},
            headers=auth_headers(employee),
        )
        assert response.status_code == 409
        assert response.json()["message"] == "Username already exists."
