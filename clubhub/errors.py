"""
clubhub.errors — Domain Error Taxonomy
=======================================

Services raise these; :mod:`clubhub.api.main` renders every one as::

    {"error": "<code>", "message": "<human text>"}

with the matching HTTP status.  Route handlers never need to catch them.
"""

from __future__ import annotations

from datetime import date


class ClubError(Exception):
    """Base class for all expected, user-facing failures."""

    status_code: int = 400
    code: str = "bad_request"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.code.replace("_", " ").capitalize()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class PermissionDenied(ClubError):
    status_code = 403
    code = "forbidden"


class NotFound(ClubError):
    status_code = 404
    code = "not_found"


class ValidationFailed(ClubError):
    status_code = 422
    code = "validation_failed"


class TaskStateConflict(ClubError):
    """The task was not in the state the transition requires."""
    status_code = 409
    code = "task_state_conflict"


class InvalidTransition(ClubError):
    """No lifecycle edge leads from the current status to the requested one."""
    status_code = 409
    code = "invalid_transition"


class ProjectHasTasks(ClubError):
    status_code = 409
    code = "project_has_tasks"


class AlreadyAttended(ClubError):
    status_code = 409
    code = "already_attended"


class AlreadyCompletedToday(ClubError):
    status_code = 400
    code = "already_completed_today"


class AlreadyCheckedIn(ClubError):
    status_code = 409
    code = "already_checked_in"

    def __init__(self, next_available: date, message: str | None = None) -> None:
        self.next_available = next_available
        super().__init__(
            message or f"Already checked in this week; next check-in opens {next_available.isoformat()}."
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), "next_available": self.next_available.isoformat()}
