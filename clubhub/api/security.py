"""
clubhub.api.security — Session JWT secret, issuance & decoding
===============================================================

The secret is validated when this module is imported, so a misconfigured
deployment fails at startup instead of on the first login.
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import jwt

_WEAK_SECRETS = frozenset({
    "clubhub-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"
SESSION_COOKIE = "session"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


def issue_token(user_id: str, email: str, role: str, *, ttl_hours: int = 12) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "exp": datetime.now(UTC) + timedelta(hours=ttl_hours),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Return the claims of a valid session token.

    Raises :class:`jwt.InvalidTokenError` (expired, tampered, malformed).
    """
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
