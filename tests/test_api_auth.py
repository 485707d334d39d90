"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> request validation ->
AuthService -> in-memory stores -> response model serialization -> the
AuthError exception handler. Unit testing route functions would miss the
error envelope and the status mapping, which are the contract clients see.

Coverage:
  - Signup: 201 body shape, 409 duplicate, 422 mismatched passwords
  - Verify link from the mail body: 200, then login works
  - Login: 200 token pair + no-store, 401 wrong password, 403 unverified, 404 unknown
  - /me: 401 without token, 200 with token, 401 token_expired after sign-out
  - Refresh and sign-out round trip
  - Reset + change password through the API
  - Internal detail never leaks into responses; 422 bodies never echo input
  - Passwords are kept as typed; only email and full_name are trimmed

Fixtures used (from conftest.py):
  - api_client: (client, mailer) -- TestClient wired to a fresh AuthService
"""

from __future__ import annotations

from urllib.parse import urlparse

import pytest
from conftest import RecordingMailer
from fastapi.testclient import TestClient

SIGNUP = {
    "full_name": "Ann",
    "email": "a@x.com",
    "password": "pw1-secret",
    "confirm_password": "pw1-secret",
}


def _signup_and_verify(client: TestClient, mailer: RecordingMailer) -> None:
    assert client.post("/api/v1/auth/signup", json=SIGNUP).status_code == 201
    link = urlparse(mailer.last.link)
    assert client.get(f"{link.path}?{link.query}").status_code == 200


def _login(client: TestClient) -> dict:
    resp = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "pw1-secret"})
    assert resp.status_code == 200, resp.text
    return resp.json()


class TestSignUp:
    def test_signup_returns_account_and_profile(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        resp = client.post("/api/v1/auth/signup", json=SIGNUP)
        assert resp.status_code == 201
        data = resp.json()
        assert data["account"]["email"] == "a@x.com"
        assert data["account"]["is_verified"] is False
        assert data["profile"]["full_name"] == "Ann"
        assert "password_hash" not in data["account"]
        assert "salt" not in data["account"]
        assert mailer.last.recipients == ["a@x.com"]

    def test_duplicate_email_is_409(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        client.post("/api/v1/auth/signup", json=SIGNUP)
        resp = client.post("/api/v1/auth/signup", json=SIGNUP)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_mismatched_confirmation_is_422(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        resp = client.post("/api/v1/auth/signup", json={**SIGNUP, "confirm_password": "different"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert mailer.sent == []

    @pytest.mark.parametrize("email", ["not-an-email", "a@b", "a @x.com"])
    def test_malformed_email_is_422(self, api_client: tuple[TestClient, RecordingMailer], email: str) -> None:
        client, _mailer = api_client
        resp = client.post("/api/v1/auth/signup", json={**SIGNUP, "email": email})
        assert resp.status_code == 422

    def test_mail_outage_is_500_without_detail(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        mailer.fail = True
        resp = client.post("/api/v1/auth/signup", json=SIGNUP)
        assert resp.status_code == 500
        error = resp.json()["error"]
        assert error["code"] == "internal"
        assert "SMTP" not in error["message"]
        assert error.get("detail") is None


class TestLogin:
    def test_login_returns_token_pair(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)
        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "pw1-secret"})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"] and data["refresh_token"]
        assert data["refresh_expires_at"] > data["access_expires_at"]

    def test_wrong_password_is_401(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)
        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_unverified_is_403(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        client.post("/api/v1/auth/signup", json=SIGNUP)
        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "pw1-secret"})
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "email_not_verified"
        assert "access_token" not in resp.json()

    def test_unknown_email_is_404_with_generic_message(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "ghost@x.com", "password": "pw1-secret"})
        assert resp.status_code == 404
        assert resp.json()["error"]["message"] == "Invalid email or password."


class TestVerifyEmail:
    def test_bad_token_is_400(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        resp = client.get("/api/v1/auth/verify_email", params={"token": "garbage"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_missing_token_is_422(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        assert client.get("/api/v1/auth/verify_email").status_code == 422


class TestSessions:
    def test_me_requires_token(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_with_access_token(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)
        tokens = _login(client)
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "a@x.com"
        assert resp.json()["full_name"] == "Ann"

    def test_me_rejects_refresh_token(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)
        tokens = _login(client)
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_token"

    def test_refresh_rotates_tokens(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)
        tokens = _login(client)
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        rotated = resp.json()
        assert rotated["access_token"] != tokens["access_token"]
        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {rotated['access_token']}"})
        assert me.status_code == 200

    def test_signout_revokes_access_and_refresh(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)
        tokens = _login(client)
        auth = {"Authorization": f"Bearer {tokens['access_token']}"}

        resp = client.post("/api/v1/auth/signout", json={"refresh_token": tokens["refresh_token"]}, headers=auth)
        assert resp.status_code == 200

        me = client.get("/api/v1/auth/me", headers=auth)
        assert me.status_code == 401
        assert me.json()["error"]["code"] == "token_expired"

        refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refresh.status_code == 401
        assert refresh.json()["error"]["code"] == "token_expired"

    def test_signout_without_bearer_is_401(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        resp = client.post("/api/v1/auth/signout", json={"refresh_token": "x"})
        assert resp.status_code == 401


class TestPasswordReset:
    def test_reset_then_change_password(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)

        resp = client.post("/api/v1/auth/reset_password", json={"email": "a@x.com"})
        assert resp.status_code == 200
        token = mailer.last.token

        body = {"token": token, "password": "new-secret-1", "confirm_password": "new-secret-1"}
        assert client.post("/api/v1/auth/change_password", json=body).status_code == 200

        reused = client.post("/api/v1/auth/change_password", json=body)
        assert reused.status_code == 400
        assert reused.json()["error"]["code"] == "invalid_token"

        old = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "pw1-secret"})
        assert old.status_code == 401
        new = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "new-secret-1"})
        assert new.status_code == 200

    def test_reset_unknown_email_is_404(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        resp = client.post("/api/v1/auth/reset_password", json={"email": "ghost@x.com"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_reset_unverified_is_403(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        client.post("/api/v1/auth/signup", json=SIGNUP)
        resp = client.post("/api/v1/auth/reset_password", json={"email": "a@x.com"})
        assert resp.status_code == 403

    def test_changed_password_with_surrounding_spaces_logs_in(
        self, api_client: tuple[TestClient, RecordingMailer]
    ) -> None:
        client, mailer = api_client
        _signup_and_verify(client, mailer)
        client.post("/api/v1/auth/reset_password", json={"email": "a@x.com"})

        spaced = " newsecret1 "
        body = {"token": mailer.last.token, "password": spaced, "confirm_password": spaced}
        assert client.post("/api/v1/auth/change_password", json=body).status_code == 200

        resp = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": spaced})
        assert resp.status_code == 200
        trimmed = client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "newsecret1"})
        assert trimmed.status_code == 401


class TestWhitespace:
    def test_signup_password_kept_as_typed(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, mailer = api_client
        spaced = "  pw1-secret  "
        body = {**SIGNUP, "email": "  a@x.com ", "full_name": " Ann ", "password": spaced, "confirm_password": spaced}
        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 201
        assert resp.json()["account"]["email"] == "a@x.com"
        assert resp.json()["profile"]["full_name"] == "Ann"

        link = urlparse(mailer.last.link)
        client.get(f"{link.path}?{link.query}")
        login = client.post("/api/v1/auth/login", json={"email": " a@x.com", "password": spaced})
        assert login.status_code == 200


class TestValidationErrors:
    def test_rejected_signup_does_not_echo_passwords(self, api_client: tuple[TestClient, RecordingMailer]) -> None:
        client, _mailer = api_client
        body = {**SIGNUP, "password": "hunter2-topsecret", "confirm_password": "hunter2-different"}
        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 422
        assert "hunter2" not in resp.text
        assert "confirm_password must match password" in resp.json()["error"]["detail"]

    def test_rejected_change_password_does_not_echo_token(
        self, api_client: tuple[TestClient, RecordingMailer]
    ) -> None:
        client, _mailer = api_client
        body = {"token": "secret-reset-token", "password": "short", "confirm_password": "short"}
        resp = client.post("/api/v1/auth/change_password", json=body)
        assert resp.status_code == 422
        assert "secret-reset-token" not in resp.text
        assert "short" not in resp.text
