"""
clubhub.api.middleware — Page-route gate
=========================================

Runs before routing for the page prefixes listed in
:data:`clubhub.engine.permissions.GATED_PREFIXES`.  It trusts the session
JWT's ``role`` claim: page gating only decides where to send the browser,
while every API route re-checks the role against the database.
"""

from __future__ import annotations

import logging

from jwt.exceptions import InvalidTokenError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

from clubhub.api import security
from clubhub.engine.permissions import is_gated_path, route_redirect

logger = logging.getLogger(__name__)


def session_role(request: Request) -> str | None:
    """Role claim of a valid session cookie, or ``None`` if not logged in."""
    token = request.cookies.get(security.SESSION_COOKIE)
    if not token:
        return None
    try:
        payload = security.decode_token(token)
    except InvalidTokenError:
        return None
    return payload.get("role") or None


class RouteGateMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if is_gated_path(path):
            target = route_redirect(path, session_role(request))
            if target is not None:
                logger.debug("Gate: %s → %s", path, target)
                return RedirectResponse(target, status_code=307)
        return await call_next(request)
