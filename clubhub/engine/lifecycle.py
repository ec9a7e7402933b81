"""
clubhub.engine.lifecycle — Task Lifecycle State Machine
========================================================

Pure transition table, no I/O.  The service layer asks this module what a
transition *should* do and then performs it as one conditional UPDATE, so
the source-state precondition is re-checked atomically by the database.

States::

    Open → Awaiting Applicant Approval → In Progress
         → Awaiting Completion Approval → Complete

Complete is terminal.  There is no reject / cancel edge.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from clubhub.database.models import TaskStatus
from clubhub.engine.permissions import Action
from clubhub.errors import InvalidTransition, TaskStateConflict

__all__ = [
    "TRANSITIONS",
    "TaskAction",
    "Transition",
    "action_for_target",
    "assignment_consistent",
    "plan_transition",
]


class TaskAction(enum.StrEnum):
    APPLY = "apply"
    APPROVE_APPLICATION = "approve_application"
    MARK_DONE = "mark_done"
    APPROVE_COMPLETION = "approve_completion"


@dataclass(frozen=True, slots=True)
class Transition:
    """One edge of the lifecycle graph."""

    action: TaskAction
    source: TaskStatus
    target: TaskStatus
    # Role permission required; None means the assignee-identity check applies
    permission: Action | None
    awards_points: bool = False


TRANSITIONS: dict[TaskAction, Transition] = {
    TaskAction.APPLY: Transition(
        TaskAction.APPLY,
        TaskStatus.OPEN,
        TaskStatus.AWAITING_APPLICANT_APPROVAL,
        Action.APPLY_TO_TASK,
    ),
    TaskAction.APPROVE_APPLICATION: Transition(
        TaskAction.APPROVE_APPLICATION,
        TaskStatus.AWAITING_APPLICANT_APPROVAL,
        TaskStatus.IN_PROGRESS,
        Action.APPROVE_APPLICATION,
    ),
    TaskAction.MARK_DONE: Transition(
        TaskAction.MARK_DONE,
        TaskStatus.IN_PROGRESS,
        TaskStatus.AWAITING_COMPLETION_APPROVAL,
        None,
    ),
    TaskAction.APPROVE_COMPLETION: Transition(
        TaskAction.APPROVE_COMPLETION,
        TaskStatus.AWAITING_COMPLETION_APPROVAL,
        TaskStatus.COMPLETE,
        Action.APPROVE_COMPLETION,
        awards_points=True,
    ),
}

_BY_TARGET: dict[TaskStatus, TaskAction] = {t.target: a for a, t in TRANSITIONS.items()}


def action_for_target(new_status: str | TaskStatus) -> TaskAction:
    """Map a requested status onto the only action that produces it.

    Raises :class:`InvalidTransition` for ``Open`` (nothing leads back to it)
    and for unknown status strings.
    """
    try:
        status = TaskStatus(new_status)
    except ValueError:
        raise InvalidTransition(f"Unknown task status {new_status!r}.") from None
    action = _BY_TARGET.get(status)
    if action is None:
        raise InvalidTransition(f"No transition leads to {status.value!r}.")
    return action


def plan_transition(current: str | TaskStatus, action: TaskAction) -> Transition:
    """Return the edge for *action*, checking it leaves from *current*.

    Raises :class:`TaskStateConflict` when the task is in any other state.
    """
    transition = TRANSITIONS[action]
    if TaskStatus(current) is not transition.source:
        raise TaskStateConflict(
            f"Cannot {action.value.replace('_', ' ')}: task is "
            f"{TaskStatus(current).value!r}, expected {transition.source.value!r}."
        )
    return transition


def assignment_consistent(status: str | TaskStatus, assigned_user_id: str | None) -> bool:
    """Open tasks never carry an assignee; every later state does."""
    if TaskStatus(status) is TaskStatus.OPEN:
        return assigned_user_id is None
    return assigned_user_id is not None
