"""
tests/test_api_auth.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> request guard ->
AuthService -> AccountStore -> response envelope. Error mapping lives in the
exception handlers in api/main.py, so only a real app round trip shows the
status codes and bodies clients actually see.

Coverage:
  - signup: 201 with token in body and cookie, duplicate email, validation 400
  - login: 200, identical 401 for wrong password and unknown email
  - /me with bearer header, with cookie, and without any token
  - forgot-password / reset-password flow, including replay
  - update-my-password invalidates earlier tokens
  - logout clears the cookie
  - health needs no auth
  - login and forgot-password answer 429 past LOGIN_RATE_LIMIT

Fixtures used (from conftest.py):
  - api_client: (client, store, mailer) -- module-scoped TestClient over the
    real app with an isolated store and an OutboxMailer.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from auth.mailer import OutboxMailer
from auth.reset_tokens import hash_reset_token
from auth.store import AccountStore
from core.config import get_settings

ApiClient = tuple[TestClient, AccountStore, OutboxMailer]

_PASSWORD = "pass1234"


@pytest.fixture(autouse=True)
def _fresh_client_state(api_client: ApiClient):
    """Drop cookies and rate-limit counters left over from earlier tests."""
    client, _store, _mailer = api_client
    client.cookies.clear()
    limiter.reset()
    yield
    client.cookies.clear()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _signup(client: TestClient, email: str, password: str = _PASSWORD, name: str | None = "Test User"):
    body = {"name": name, "email": email, "password": password, "passwordConfirm": password}
    return client.post("/api/v1/auth/signup", json=body)


def _login(client: TestClient, email: str, password: str = _PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestSignup:
    def test_signup_returns_201_with_token_and_cookie(self, api_client: ApiClient) -> None:
        client, store, _mailer = api_client
        resp = _signup(client, "signup@example.com", name="Jonas Schmedtmann")
        assert resp.status_code == 201, resp.text

        data = resp.json()
        assert data["status"] == "success"
        assert data["token"]
        account = data["data"]["account"]
        assert account["email"] == "signup@example.com"
        assert account["name"] == "Jonas Schmedtmann"
        assert account["role"] == "user"
        assert "password_hash" not in account

        assert resp.cookies.get(get_settings().auth_cookie_name) == data["token"]
        assert resp.headers["cache-control"] == "no-store"
        assert store.find_by_email("signup@example.com").id == account["id"]

    def test_signup_ignores_role_in_body(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        body = {
            "email": "sneaky@example.com",
            "password": _PASSWORD,
            "passwordConfirm": _PASSWORD,
            "role": "admin",
        }
        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 201, resp.text
        assert resp.json()["data"]["account"]["role"] == "user"

    def test_duplicate_email_returns_400(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        assert _signup(client, "dupe@example.com").status_code == 201
        resp = _signup(client, "DUPE@example.com")
        assert resp.status_code == 400
        assert resp.json()["code"] == "duplicate_email"
        assert resp.json()["status"] == "fail"

    def test_password_mismatch_returns_400(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        body = {"email": "mismatch@example.com", "password": _PASSWORD, "passwordConfirm": "different1"}
        resp = client.post("/api/v1/auth/signup", json=body)
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_short_password_returns_400(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        resp = _signup(client, "short@example.com", password="short")
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    def test_missing_fields_return_400(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        resp = client.post("/api/v1/auth/signup", json={"email": "partial@example.com"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"


class TestLogin:
    def test_login_success(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        _signup(client, "login@example.com")
        client.cookies.clear()

        resp = _login(client, "Login@Example.com")
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"]["account"]["email"] == "login@example.com"
        assert resp.cookies.get(get_settings().auth_cookie_name) == resp.json()["token"]

    def test_wrong_password_and_unknown_email_are_indistinguishable(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        _signup(client, "victim@example.com")
        client.cookies.clear()

        wrong_password = _login(client, "victim@example.com", "wrongpass1")
        unknown_email = _login(client, "nobody@example.com", _PASSWORD)

        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.json() == unknown_email.json()
        assert wrong_password.json()["code"] == "invalid_credentials"


class TestMe:
    def test_me_with_bearer_token(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        token = _signup(client, "me@example.com").json()["token"]
        client.cookies.clear()

        resp = client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["data"]["account"]["email"] == "me@example.com"

    def test_me_with_cookie(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        _signup(client, "cookie@example.com")
        # The signup response cookie is still in the client jar.
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json()["data"]["account"]["email"] == "cookie@example.com"

    def test_me_without_token_returns_401(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthenticated"

    def test_me_with_garbage_token_matches_missing_token(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        missing = client.get("/api/v1/auth/me")
        garbage = client.get("/api/v1/auth/me", headers=_bearer("not.a.token"))
        assert garbage.status_code == 401
        assert garbage.json() == missing.json()


class TestPasswordReset:
    def test_forgot_password_unknown_email_is_silent(self, api_client: ApiClient) -> None:
        client, _store, mailer = api_client
        sent_before = len(mailer.outbox)
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "success"
        assert len(mailer.outbox) == sent_before

    def test_forgot_password_response_does_not_reveal_registration(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        _signup(client, "known@example.com")
        known = client.post("/api/v1/auth/forgot-password", json={"email": "known@example.com"})
        unknown = client.post("/api/v1/auth/forgot-password", json={"email": "unknown@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_reset_flow(self, api_client: ApiClient) -> None:
        client, store, mailer = api_client
        _signup(client, "reset@example.com")
        client.cookies.clear()

        resp = client.post("/api/v1/auth/forgot-password", json={"email": "reset@example.com"})
        assert resp.status_code == 200
        sent = mailer.outbox[-1]
        assert sent.to == "reset@example.com"
        assert f"/api/v1/auth/reset-password/{sent.raw_token}" in sent.body
        assert store.find_by_email("reset@example.com").reset_token_hash == hash_reset_token(sent.raw_token)

        body = {"password": "newpass123", "passwordConfirm": "newpass123"}
        resp = client.patch(f"/api/v1/auth/reset-password/{sent.raw_token}", json=body)
        assert resp.status_code == 200, resp.text
        assert client.get("/api/v1/auth/me", headers=_bearer(resp.json()["token"])).status_code == 200

        assert _login(client, "reset@example.com", "newpass123").status_code == 200
        assert _login(client, "reset@example.com", _PASSWORD).status_code == 401

        replay = client.patch(f"/api/v1/auth/reset-password/{sent.raw_token}", json=body)
        assert replay.status_code == 400
        assert replay.json()["code"] == "reset_token_invalid"

    def test_expired_reset_token_returns_400(self, api_client: ApiClient) -> None:
        client, store, _mailer = api_client
        account_id = _signup(client, "expired@example.com").json()["data"]["account"]["id"]
        raw = "ab" * 32
        store.set_reset_token(account_id, hash_reset_token(raw), datetime.now(timezone.utc) - timedelta(minutes=1))

        body = {"password": "newpass123", "passwordConfirm": "newpass123"}
        resp = client.patch(f"/api/v1/auth/reset-password/{raw}", json=body)
        assert resp.status_code == 400
        assert resp.json()["code"] == "reset_token_expired"

    def test_delivery_failure_returns_500(self, api_client: ApiClient) -> None:
        client, store, mailer = api_client
        _signup(client, "undeliverable@example.com")
        mailer.fail = True
        try:
            resp = client.post("/api/v1/auth/forgot-password", json={"email": "undeliverable@example.com"})
        finally:
            mailer.fail = False
        assert resp.status_code == 500
        assert resp.json()["status"] == "error"
        assert resp.json()["code"] == "email_delivery_failed"
        assert store.find_by_email("undeliverable@example.com").reset_token_hash is None


class TestUpdateMyPassword:
    def test_update_password_invalidates_old_token(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        old_token = _signup(client, "rotate@example.com").json()["token"]
        client.cookies.clear()

        body = {"passwordCurrent": _PASSWORD, "password": "rotated123", "passwordConfirm": "rotated123"}
        resp = client.patch("/api/v1/auth/update-my-password", json=body, headers=_bearer(old_token))
        assert resp.status_code == 200, resp.text
        new_token = resp.json()["token"]
        client.cookies.clear()

        assert client.get("/api/v1/auth/me", headers=_bearer(old_token)).status_code == 401
        assert client.get("/api/v1/auth/me", headers=_bearer(new_token)).status_code == 200

    def test_wrong_current_password_returns_401(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        token = _signup(client, "wrongcurrent@example.com").json()["token"]
        client.cookies.clear()

        body = {"passwordCurrent": "notmypass1", "password": "rotated123", "passwordConfirm": "rotated123"}
        resp = client.patch("/api/v1/auth/update-my-password", json=body, headers=_bearer(token))
        assert resp.status_code == 401
        assert client.get("/api/v1/auth/me", headers=_bearer(token)).status_code == 200

    def test_requires_authentication(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        body = {"passwordCurrent": _PASSWORD, "password": "rotated123", "passwordConfirm": "rotated123"}
        resp = client.patch("/api/v1/auth/update-my-password", json=body)
        assert resp.status_code == 401


class TestLogoutAndHealth:
    def test_logout_clears_cookie(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        _signup(client, "logout@example.com")
        assert client.get("/api/v1/auth/me").status_code == 200

        resp = client.get("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert resp.json()["status"] == "success"
        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith(f"{get_settings().auth_cookie_name}=")
        assert "Max-Age=0" in set_cookie

        assert client.get("/api/v1/auth/me").status_code == 401

    def test_health_needs_no_auth(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["version"]


class TestRateLimit:
    """login and forgot-password share LOGIN_RATE_LIMIT per client address."""

    def _allowed(self) -> int:
        return int(get_settings().login_rate_limit.split("/")[0])

    def test_login_over_limit_returns_429(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        try:
            for _ in range(self._allowed()):
                assert _login(client, "flood@example.com", "wrongpass1").status_code == 401

            resp = _login(client, "flood@example.com", "wrongpass1")
            assert resp.status_code == 429
            data = resp.json()
            assert data["status"] == "fail"
            assert data["code"] == "rate_limited"
            assert int(resp.headers["Retry-After"]) > 0
        finally:
            limiter.reset()

    def test_forgot_password_over_limit_returns_429(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        try:
            for _ in range(self._allowed()):
                resp = client.post("/api/v1/auth/forgot-password", json={"email": "flood@example.com"})
                assert resp.status_code == 200

            resp = client.post("/api/v1/auth/forgot-password", json={"email": "flood@example.com"})
            assert resp.status_code == 429
            assert resp.json()["code"] == "rate_limited"
        finally:
            limiter.reset()

    def test_other_routes_are_not_limited(self, api_client: ApiClient) -> None:
        client, _store, _mailer = api_client
        for _ in range(self._allowed() + 2):
            assert client.get("/api/v1/health").status_code == 200
