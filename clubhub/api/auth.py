"""
clubhub.api.auth — OAuth2 login, session cookie & post-login intent
=====================================================================

Two routers:

- ``router`` (``/api/auth``) runs the OAuth2 authorization-code flow against
  the configured identity provider, provisions the profile and sets the
  ``session`` JWT cookie.
- ``intent_router`` (``/api``) remembers which event a visitor scanned
  before logging in, so the callback can send them straight back to it.
"""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import delete

from clubhub.api import security
from clubhub.api.deps import get_config, get_engine
from clubhub.config import ClubConfig
from clubhub.database.engine import get_session, run_db
from clubhub.database.models import OAuthState
from clubhub.services import user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])
intent_router = APIRouter(tags=["auth"])

INTENT_COOKIE = "intended_event"
OAUTH_SCOPE = "openid email profile"
OAUTH_STATE_TTL_SECONDS = 600


@dataclass(frozen=True, slots=True)
class OAuthSettings:
    client_id: str
    client_secret: str
    redirect_uri: str
    authorize_url: str
    token_url: str
    userinfo_url: str
    frontend_url: str


def _oauth_env() -> OAuthSettings:
    """Return required OAuth env vars or raise a clear 500."""
    required = {
        "OAUTH_CLIENT_ID": os.getenv("OAUTH_CLIENT_ID", "").strip(),
        "OAUTH_CLIENT_SECRET": os.getenv("OAUTH_CLIENT_SECRET", "").strip(),
        "OAUTH_REDIRECT_URI": os.getenv("OAUTH_REDIRECT_URI", "").strip(),
        "OAUTH_AUTHORIZE_URL": os.getenv("OAUTH_AUTHORIZE_URL", "").strip(),
        "OAUTH_TOKEN_URL": os.getenv("OAUTH_TOKEN_URL", "").strip(),
        "OAUTH_USERINFO_URL": os.getenv("OAUTH_USERINFO_URL", "").strip(),
    }
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise HTTPException(
            status_code=500,
            detail="OAuth is not configured: missing " + ", ".join(missing),
        )

    return OAuthSettings(
        client_id=required["OAUTH_CLIENT_ID"],
        client_secret=required["OAUTH_CLIENT_SECRET"],
        redirect_uri=required["OAUTH_REDIRECT_URI"],
        authorize_url=required["OAUTH_AUTHORIZE_URL"],
        token_url=required["OAUTH_TOKEN_URL"],
        userinfo_url=required["OAUTH_USERINFO_URL"],
        frontend_url=os.getenv("FRONTEND_URL", "").strip().rstrip("/"),
    )


def _secure_cookies() -> bool:
    return os.getenv("ENVIRONMENT", "development").strip().lower() == "production"


def _http_client() -> httpx.AsyncClient:
    """Outbound client for the identity provider (explicit timeout + retry)."""
    transport = httpx.AsyncHTTPTransport(retries=1)
    return httpx.AsyncClient(timeout=10, transport=transport)


# ---------------------------------------------------------------------------
# OAuth state
# ---------------------------------------------------------------------------
def _store_oauth_state(engine, state: str) -> None:
    """Persist an OAuth state token and prune stale entries."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        session.add(OAuthState(state=state))


def _consume_oauth_state(engine, state: str) -> bool:
    """Consume a one-time OAuth state token if valid and unexpired."""
    cutoff = datetime.now(UTC) - timedelta(seconds=OAUTH_STATE_TTL_SECONDS)
    with get_session(engine) as session:
        session.execute(delete(OAuthState).where(OAuthState.created_at < cutoff))
        row = session.get(OAuthState, state)
        if row is None:
            return False
        session.delete(row)
        return True


class _AuthFailed(Exception):
    """Any failure between the provider redirect and a usable identity."""


async def _fetch_identity(oauth: OAuthSettings, code: str) -> tuple[str, str]:
    """Exchange *code* and return the provider's ``(subject, email)``."""
    async with _http_client() as client:
        token_resp = await client.post(
            oauth.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": oauth.redirect_uri,
                "client_id": oauth.client_id,
                "client_secret": oauth.client_secret,
            },
            headers={"Accept": "application/json"},
        )
        if token_resp.status_code != 200:
            raise _AuthFailed(f"token exchange returned {token_resp.status_code}")

        access_token = token_resp.json().get("access_token")
        if not access_token:
            raise _AuthFailed("no access token returned")

        user_resp = await client.get(
            oauth.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    if user_resp.status_code != 200:
        raise _AuthFailed(f"userinfo returned {user_resp.status_code}")

    info = user_resp.json()
    subject = info.get("sub") or info.get("id")
    email = info.get("email")
    if not subject or not email:
        raise _AuthFailed("userinfo lacks a subject or email")
    return str(subject), email


# ---------------------------------------------------------------------------
# /api/auth
# ---------------------------------------------------------------------------
@router.get("/login")
async def login(engine=Depends(get_engine)):
    """Redirect to the identity provider's consent screen."""
    oauth = _oauth_env()

    state = secrets.token_urlsafe(32)
    await run_db(_store_oauth_state, engine, state)

    query = urlencode(
        {
            "client_id": oauth.client_id,
            "redirect_uri": oauth.redirect_uri,
            "response_type": "code",
            "scope": OAUTH_SCOPE,
            "state": state,
        }
    )
    return RedirectResponse(f"{oauth.authorize_url}?{query}")


@router.get("/callback")
async def callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    cfg: ClubConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Exchange the OAuth code, provision the profile and start a session."""
    oauth = _oauth_env()
    failed = RedirectResponse(f"{oauth.frontend_url}/login?error=AuthFailed")

    if not code:
        return RedirectResponse(f"{oauth.frontend_url}/login")

    if not state or not await run_db(_consume_oauth_state, engine, state):
        logger.warning("OAuth callback with invalid or expired state")
        return failed

    try:
        subject, email = await _fetch_identity(oauth, code)
    except (_AuthFailed, httpx.HTTPError, ValueError) as exc:
        logger.warning("OAuth callback failed: %s", exc)
        return failed

    user, created = await run_db(user_service.provision_or_touch, engine, subject, email)
    if created:
        logger.info("First login for %s", email)

    token = security.issue_token(
        user.id, user.email, user.role, ttl_hours=cfg.session_ttl_hours,
    )

    intended = request.cookies.get(INTENT_COOKIE)
    target = f"/attendance/{intended}" if intended else "/dashboard"
    response = RedirectResponse(f"{oauth.frontend_url}{target}")
    response.set_cookie(
        security.SESSION_COOKIE,
        token,
        max_age=cfg.session_ttl_hours * 3600,
        httponly=True,
        secure=_secure_cookies(),
        samesite="lax",
        path="/",
    )
    if intended:
        response.delete_cookie(INTENT_COOKIE, path="/")
    return response


@router.post("/logout")
def logout():
    response = JSONResponse({"ok": True})
    response.delete_cookie(security.SESSION_COOKIE, path="/")
    return response


# ---------------------------------------------------------------------------
# Post-login intent cookie
# ---------------------------------------------------------------------------
def _set_intent(response: RedirectResponse, event_id: str, cfg: ClubConfig, samesite: str) -> None:
    response.set_cookie(
        INTENT_COOKIE,
        event_id,
        max_age=cfg.intent_cookie_ttl_seconds,
        httponly=True,
        secure=_secure_cookies(),
        samesite=samesite,
        path="/",
    )


@intent_router.get("/login")
def login_with_intent(
    intended_event: str | None = None,
    cfg: ClubConfig = Depends(get_config),
):
    """Remember *intended_event* (if given) and send the visitor to log in."""
    response = RedirectResponse("/login")
    if intended_event:
        _set_intent(response, intended_event, cfg, "strict")
    return response


@intent_router.get("/set-intended-event")
def set_intended_event(
    event_id: str | None = Query(None, alias="eventId"),
    cfg: ClubConfig = Depends(get_config),
):
    response = RedirectResponse("/login")
    if event_id:
        _set_intent(response, event_id, cfg, "lax")
    return response


@intent_router.get("/get-intended-event")
def get_intended_event(request: Request):
    """Return and forget the remembered event."""
    intended = request.cookies.get(INTENT_COOKIE)
    response = JSONResponse({"intendedEvent": intended})
    if intended:
        response.delete_cookie(INTENT_COOKIE, path="/")
    return response
