"""
clubhub.api.deps — FastAPI dependency injection
=================================================
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from clubhub.api import security
from clubhub.config import ClubConfig, load_config
from clubhub.database.engine import create_db_engine
from clubhub.engine import permissions
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.errors import PermissionDenied
from clubhub.services import user_service

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> ClubConfig:
    return load_config()


def session_token(request: Request, authorization: str | None) -> str | None:
    """Bearer header first, then the ``session`` cookie."""
    if authorization and authorization.startswith("Bearer "):
        return authorization.split(" ", 1)[1]
    return request.cookies.get(security.SESSION_COOKIE)


def get_current_user(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> CurrentUser:
    """Validate the session JWT and resolve the caller's current role.

    The role is looked up fresh from ``users`` by email on every request; a
    role claim in the token is never trusted for API authorisation.
    """
    token = session_token(request, authorization)
    if not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        payload = security.decode_token(token)
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")

    user_id, email = payload.get("sub"), payload.get("email")
    if not user_id or not email:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")

    user = user_service.resolve_identity(engine, str(user_id), email)
    if user is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Unknown user")
    return user


def requires(action: Action):
    """Dependency factory: the current user, provided they may do *action*."""

    def _dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        try:
            permissions.require(user.role, action)
        except PermissionDenied:
            logger.warning("Denied %s to %s (%s)", action.value, user.id, user.role.value)
            raise
        return user

    return _dependency
