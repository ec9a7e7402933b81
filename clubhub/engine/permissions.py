"""
clubhub.engine.permissions — Role-Gated Access Predicates
==========================================================

Pure functions, no I/O.  Every privileged operation names an
:class:`Action`; :data:`ALLOWED_ROLES` lists exactly which roles may perform
it.  Checks are set membership, never ``role >= X`` — Member is *not*
implicitly allowed everything a Visitor is, and so on.

The module also holds the page-route gate applied by
:mod:`clubhub.api.middleware`.
"""

from __future__ import annotations

import enum
from urllib.parse import urlencode

from clubhub.database.models import Role
from clubhub.errors import PermissionDenied

__all__ = [
    "ALLOWED_ROLES",
    "Action",
    "can",
    "coerce_role",
    "is_assignee",
    "is_gated_path",
    "require",
    "route_redirect",
]


class Action(enum.StrEnum):
    VIEW_TASKS = "view_tasks"
    CREATE_TASK = "create_task"
    MANAGE_PROJECTS = "manage_projects"
    MANAGE_EVENTS = "manage_events"
    AMPLIFY_TASK = "amplify_task"
    MANAGE_USERS = "manage_users"
    APPLY_TO_TASK = "apply_to_task"
    APPROVE_APPLICATION = "approve_application"
    APPROVE_COMPLETION = "approve_completion"
    APPROVE_ATTENDANCE = "approve_attendance"
    REGISTER_FOR_EVENT = "register_for_event"
    QR_CHECK_IN = "qr_check_in"
    COMPLETE_RECURRING_TASK = "complete_recurring_task"
    WEEKLY_CHECK_IN = "weekly_check_in"


_EVERYONE = frozenset(Role)
_MEMBERS = frozenset({Role.MEMBER, Role.MANAGER, Role.ADMIN})
_STAFF = frozenset({Role.MANAGER, Role.ADMIN})
_ADMINS = frozenset({Role.ADMIN})

ALLOWED_ROLES: dict[Action, frozenset[Role]] = {
    Action.VIEW_TASKS: _MEMBERS,
    Action.CREATE_TASK: _STAFF,
    Action.MANAGE_PROJECTS: _STAFF,
    Action.MANAGE_EVENTS: _STAFF,
    Action.AMPLIFY_TASK: _STAFF,
    Action.MANAGE_USERS: _ADMINS,
    Action.APPLY_TO_TASK: _MEMBERS,
    Action.APPROVE_APPLICATION: _STAFF,
    Action.APPROVE_COMPLETION: _STAFF,
    Action.APPROVE_ATTENDANCE: _STAFF,
    Action.REGISTER_FOR_EVENT: _EVERYONE,
    Action.QR_CHECK_IN: _EVERYONE,
    Action.COMPLETE_RECURRING_TASK: _MEMBERS,
    Action.WEEKLY_CHECK_IN: _MEMBERS,
}


def coerce_role(value: str | Role | None) -> Role:
    """Map a stored or claimed role string onto :class:`Role`.

    Anything unrecognised (including ``None`` and lowercase variants) is
    treated as the least-privileged role.
    """
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return Role.VISITOR


def can(role: str | Role | None, action: Action) -> bool:
    return coerce_role(role) in ALLOWED_ROLES[action]


def require(role: str | Role | None, action: Action) -> None:
    """Raise :class:`PermissionDenied` unless *role* may perform *action*."""
    if not can(role, action):
        raise PermissionDenied(
            f"Role {coerce_role(role).value} may not {action.value.replace('_', ' ')}."
        )


def is_assignee(assigned_user_id: str | None, user_id: str) -> bool:
    """Identity check for assignee-only actions; role plays no part."""
    return assigned_user_id is not None and assigned_user_id == user_id


# ---------------------------------------------------------------------------
# Page-route gate
# ---------------------------------------------------------------------------
GATED_PREFIXES: tuple[str, ...] = (
    "/dashboard", "/admin", "/manager", "/member", "/tasks", "/teams",
    "/profile", "/impressum", "/attendance", "/api/login",
)

# Reachable without a session
PUBLIC_PATHS: frozenset[str] = frozenset({"/impressum"})
PUBLIC_PREFIXES: tuple[str, ...] = ("/attendance", "/api/login", "/login")

ROUTE_ROLES: tuple[tuple[str, frozenset[Role]], ...] = (
    ("/admin", _ADMINS),
    ("/manager", _STAFF),
    ("/member", _MEMBERS),
    ("/tasks", _MEMBERS),
    ("/teams", _MEMBERS),
)

LOGIN_PATH = "/login"
UNAUTHORIZED_PATH = "/unauthorized"


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def is_gated_path(path: str) -> bool:
    return any(_under(path, prefix) for prefix in GATED_PREFIXES)


def route_redirect(path: str, role: str | Role | None) -> str | None:
    """Decide where a page request should go instead, if anywhere.

    *role* is the session's role claim, or ``None`` for an unauthenticated
    request.  Returns a redirect target or ``None`` to let the request
    through.
    """
    if path in PUBLIC_PATHS or any(_under(path, prefix) for prefix in PUBLIC_PREFIXES):
        return None

    if role is None:
        return f"{LOGIN_PATH}?{urlencode({'redirectedFrom': path})}"

    resolved = coerce_role(role)
    for prefix, allowed in ROUTE_ROLES:
        if _under(path, prefix) and resolved not in allowed:
            return UNAUTHORIZED_PATH
    return None
