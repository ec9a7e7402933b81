"""
tests/test_auth.py — OAuth Callback, Session Cookie & Login Intent
===================================================================
The identity provider is replaced with an ``httpx.MockTransport`` so the
whole callback runs without network access.
"""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from clubhub.api import auth, security
from clubhub.database.models import OAuthState, Role, User

TOKEN_URL = "https://idp.example.org/token"
USERINFO_URL = "https://idp.example.org/userinfo"


@pytest.fixture
def oauth_env(monkeypatch):
    monkeypatch.setenv("OAUTH_CLIENT_ID", "client-id")
    monkeypatch.setenv("OAUTH_CLIENT_SECRET", "client-secret")
    monkeypatch.setenv("OAUTH_REDIRECT_URI", "http://testserver/api/auth/callback")
    monkeypatch.setenv("OAUTH_AUTHORIZE_URL", "https://idp.example.org/authorize")
    monkeypatch.setenv("OAUTH_TOKEN_URL", TOKEN_URL)
    monkeypatch.setenv("OAUTH_USERINFO_URL", USERINFO_URL)
    monkeypatch.delenv("FRONTEND_URL", raising=False)
    monkeypatch.delenv("ENVIRONMENT", raising=False)


@pytest.fixture
def provider(monkeypatch):
    """Fake identity provider; tweak ``provider["userinfo"]`` per test."""
    state = {"token_status": 200, "userinfo": {"sub": "oauth-42", "email": "new@example.org"}}

    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            if state["token_status"] != 200:
                return httpx.Response(state["token_status"], json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "idp-token"})
        if str(request.url) == USERINFO_URL:
            assert request.headers["Authorization"] == "Bearer idp-token"
            return httpx.Response(200, json=state["userinfo"])
        return httpx.Response(404)

    monkeypatch.setattr(
        auth, "_http_client",
        lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return state


def _set_cookies(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def _cookie(resp, name: str) -> str:
    matches = [c for c in _set_cookies(resp) if c.startswith(f"{name}=")]
    assert matches, f"no {name} cookie set"
    return matches[0]


# ===========================================================================
# Login redirect
# ===========================================================================
class TestLogin:
    def test_redirects_to_provider_with_state(self, client, db_engine, oauth_env):
        resp = client.get("/api/auth/login", follow_redirects=False)
        assert resp.status_code == 307
        location = urlparse(resp.headers["location"])
        assert location.netloc == "idp.example.org"
        params = parse_qs(location.query)
        assert params["client_id"] == ["client-id"]
        assert params["response_type"] == ["code"]

        with Session(db_engine) as session:
            stored = session.scalars(select(OAuthState.state)).all()
        assert stored == params["state"]

    def test_missing_configuration_is_500(self, client, monkeypatch):
        monkeypatch.delenv("OAUTH_CLIENT_ID", raising=False)
        resp = client.get("/api/auth/login", follow_redirects=False)
        assert resp.status_code == 500
        assert "OAUTH_CLIENT_ID" in resp.json()["detail"]


# ===========================================================================
# Callback
# ===========================================================================
class TestCallback:
    def test_first_login_provisions_visitor(self, client, db_engine, oauth_env, provider):
        auth._store_oauth_state(db_engine, "state123")
        resp = client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "state123"},
            follow_redirects=False,
        )
        assert resp.status_code == 307
        assert resp.headers["location"] == "/dashboard"

        cookie = _cookie(resp, security.SESSION_COOKIE)
        assert "HttpOnly" in cookie
        assert "Max-Age=43200" in cookie

        token = cookie.split(";", 1)[0].split("=", 1)[1]
        payload = security.decode_token(token)
        assert payload["sub"] == "oauth-42"
        assert payload["role"] == Role.VISITOR.value

        with Session(db_engine) as session:
            user = session.get(User, "oauth-42")
            assert user.email == "new@example.org"
            assert user.role == Role.VISITOR.value

    def test_state_is_single_use(self, client, db_engine, oauth_env, provider):
        auth._store_oauth_state(db_engine, "state123")
        client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "state123"},
            follow_redirects=False,
        )
        resp = client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "state123"},
            follow_redirects=False,
        )
        assert resp.headers["location"] == "/login?error=AuthFailed"

    def test_intended_event_wins(self, client, db_engine, oauth_env, provider):
        auth._store_oauth_state(db_engine, "state123")
        client.cookies.set(auth.INTENT_COOKIE, "7")
        resp = client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "state123"},
            follow_redirects=False,
        )
        assert resp.headers["location"] == "/attendance/7"
        assert "Max-Age=0" in _cookie(resp, auth.INTENT_COOKIE)

    def test_existing_profile_keeps_role(self, client, db_engine, oauth_env, provider, users):
        provider["userinfo"] = {"sub": "u-manager", "email": "u-manager@example.org"}
        auth._store_oauth_state(db_engine, "state123")
        resp = client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "state123"},
            follow_redirects=False,
        )
        token = _cookie(resp, security.SESSION_COOKIE).split(";", 1)[0].split("=", 1)[1]
        assert security.decode_token(token)["role"] == Role.MANAGER.value

    def test_no_code_goes_back_to_login(self, client, oauth_env):
        resp = client.get("/api/auth/callback", follow_redirects=False)
        assert resp.headers["location"] == "/login"

    def test_unknown_state(self, client, oauth_env, provider):
        resp = client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "forged"},
            follow_redirects=False,
        )
        assert resp.headers["location"] == "/login?error=AuthFailed"
        assert not any(c.startswith("session=") for c in _set_cookies(resp))

    def test_token_exchange_failure(self, client, db_engine, oauth_env, provider):
        provider["token_status"] = 400
        auth._store_oauth_state(db_engine, "state123")
        resp = client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "state123"},
            follow_redirects=False,
        )
        assert resp.headers["location"] == "/login?error=AuthFailed"

    def test_userinfo_without_email(self, client, db_engine, oauth_env, provider):
        provider["userinfo"] = {"sub": "oauth-42"}
        auth._store_oauth_state(db_engine, "state123")
        resp = client.get(
            "/api/auth/callback",
            params={"code": "abc", "state": "state123"},
            follow_redirects=False,
        )
        assert resp.headers["location"] == "/login?error=AuthFailed"


class TestLogout:
    def test_clears_session_cookie(self, client):
        resp = client.post("/api/auth/logout")
        assert resp.json() == {"ok": True}
        assert "Max-Age=0" in _cookie(resp, security.SESSION_COOKIE)


# ===========================================================================
# Post-login intent cookie
# ===========================================================================
class TestIntentCookie:
    def test_login_with_intent_sets_strict_cookie(self, client):
        resp = client.get("/api/login", params={"intended_event": "7"}, follow_redirects=False)
        assert resp.status_code == 307
        assert resp.headers["location"] == "/login"
        cookie = _cookie(resp, auth.INTENT_COOKIE)
        assert cookie.startswith("intended_event=7;")
        assert "HttpOnly" in cookie
        assert "Max-Age=300" in cookie
        assert "samesite=strict" in cookie.lower()

    def test_login_without_intent_sets_nothing(self, client):
        resp = client.get("/api/login", follow_redirects=False)
        assert not any(c.startswith("intended_event=") for c in _set_cookies(resp))

    def test_set_intended_event_is_lax(self, client):
        resp = client.get(
            "/api/set-intended-event", params={"eventId": "12"}, follow_redirects=False,
        )
        cookie = _cookie(resp, auth.INTENT_COOKIE)
        assert cookie.startswith("intended_event=12;")
        assert "samesite=lax" in cookie.lower()

    def test_get_intended_event_consumes_cookie(self, client):
        client.cookies.set(auth.INTENT_COOKIE, "12")
        resp = client.get("/api/get-intended-event")
        assert resp.json() == {"intendedEvent": "12"}
        assert "Max-Age=0" in _cookie(resp, auth.INTENT_COOKIE)

    def test_get_intended_event_when_absent(self, client):
        resp = client.get("/api/get-intended-event")
        assert resp.json() == {"intendedEvent": None}
        assert _set_cookies(resp) == []
