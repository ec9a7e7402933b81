"""
clubhub.engine.identity — Request-Scoped Caller Identity
=========================================================

Every route resolves a :class:`CurrentUser` once per request (see
:func:`clubhub.api.deps.get_current_user`) and passes it explicitly into the
service layer.  Nothing reads identity from ambient state.
"""

from __future__ import annotations

from dataclasses import dataclass

from clubhub.database.models import Role

__all__ = ["CurrentUser"]


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """The authenticated caller, with a role freshly looked up by email."""

    id: str
    email: str
    role: Role = Role.VISITOR
    points: int = 0
