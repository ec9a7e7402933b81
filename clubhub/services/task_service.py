"""
clubhub.services.task_service — Task CRUD & Lifecycle Transitions
==================================================================

Every lifecycle step is a single conditional UPDATE::

    UPDATE tasks SET status = :target [, assigned_user_id = :caller]
     WHERE id = :id AND status = :source [AND assigned_user_id IS NULL]

and the row count decides success.  Two members applying to the same Open
task at once therefore get exactly one assignment; the loser sees
:class:`~clubhub.errors.TaskStateConflict`.  Approving a completion credits
the assignee through the points ledger inside the same transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from clubhub.constants import (
    AMPLIFIER_MAX,
    AMPLIFIER_MIN,
    RATING_MAX,
    RATING_MIN,
    amplified_points,
    task_points,
)
from clubhub.database.models import (
    AdminActionType,
    Category,
    PointSource,
    Project,
    Task,
    TaskStatus,
)
from clubhub.engine import permissions
from clubhub.engine.identity import CurrentUser
from clubhub.engine.lifecycle import (
    TRANSITIONS,
    TaskAction,
    Transition,
    action_for_target,
    assignment_consistent,
    plan_transition,
)
from clubhub.engine.permissions import Action
from clubhub.errors import NotFound, PermissionDenied, TaskStateConflict, ValidationFailed
from clubhub.services.audit_service import log_action, row_to_dict
from clubhub.services.points_service import award_points

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_task(engine: Engine, task_id: int) -> Task:
    with Session(engine) as session:
        task = session.get(Task, task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found.")
        session.expunge(task)
        return task


def list_tasks(
    engine: Engine,
    actor: CurrentUser,
    *,
    project_id: int | None = None,
    status: str | None = None,
    assigned_user_id: str | None = None,
) -> list[Task]:
    """Tasks visible on the tasks page, newest first."""
    permissions.require(actor.role, Action.VIEW_TASKS)
    with Session(engine) as session:
        query = select(Task).order_by(Task.created_at.desc(), Task.id.desc())
        if project_id is not None:
            query = query.where(Task.project_id == project_id)
        if status is not None:
            query = query.where(Task.status == status)
        if assigned_user_id is not None:
            query = query.where(Task.assigned_user_id == assigned_user_id)
        tasks = session.scalars(query).all()
        session.expunge_all()
        return list(tasks)


def recent_tasks(engine: Engine, *, limit: int = 5) -> list[Task]:
    with Session(engine) as session:
        tasks = session.scalars(
            select(Task).order_by(Task.created_at.desc(), Task.id.desc()).limit(limit)
        ).all()
        session.expunge_all()
        return list(tasks)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def _check_rating(name: str, value: int) -> None:
    if not RATING_MIN <= value <= RATING_MAX:
        raise ValidationFailed(f"{name} must be between {RATING_MIN} and {RATING_MAX}.")


def create_task(
    engine: Engine,
    actor: CurrentUser,
    *,
    name: str,
    project_id: int,
    instructions: str | None = None,
    category_id: int | None = None,
    urgency: int = 2,
    difficulty: int = 2,
    priority: int = 2,
    deadline: datetime | None = None,
) -> Task:
    """Create an Open, unassigned task worth ``(u + d + p) × 10`` points."""
    permissions.require(actor.role, Action.CREATE_TASK)
    for label, value in (("urgency", urgency), ("difficulty", difficulty), ("priority", priority)):
        _check_rating(label, value)

    with Session(engine, expire_on_commit=False) as session:
        if session.get(Project, project_id) is None:
            raise NotFound(f"Project {project_id} not found.")
        if category_id is not None and session.get(Category, category_id) is None:
            raise NotFound(f"Category {category_id} not found.")

        task = Task(
            name=name,
            instructions=instructions,
            project_id=project_id,
            category_id=category_id,
            urgency=urgency,
            difficulty=difficulty,
            priority=priority,
            points=task_points(urgency, difficulty, priority),
            point_amplifier=1.0,
            status=TaskStatus.OPEN.value,
            assigned_user_id=None,
            created_by=actor.id,
            deadline=deadline,
        )
        session.add(task)
        session.commit()
        session.refresh(task)
        session.expunge(task)
        logger.info("Task %d %r created by %s (%d pts)", task.id, task.name, actor.id, task.points)
        return task


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
def transition(engine: Engine, actor: CurrentUser, task_id: int, action: TaskAction) -> Task:
    """Move *task_id* along the lifecycle edge named by *action*.

    Raises
    ------
    NotFound
        No such task.
    PermissionDenied
        Caller lacks the role, or is not the assignee for ``mark_done``.
    TaskStateConflict
        Task is not in the edge's source state (checked again atomically by
        the UPDATE, so a concurrent change also lands here).
    """
    with Session(engine, expire_on_commit=False) as session:
        task = session.get(Task, task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found.")

        edge = _authorize_and_plan(actor, task, action)

        stmt = (
            update(Task)
            .where(Task.id == task_id, Task.status == edge.source.value)
            .values(status=edge.target.value)
            .execution_options(synchronize_session=False)
        )
        if action is TaskAction.APPLY:
            stmt = stmt.where(Task.assigned_user_id.is_(None)).values(
                assigned_user_id=actor.id
            )
        elif action is TaskAction.MARK_DONE:
            stmt = stmt.where(Task.assigned_user_id == actor.id)

        result = session.execute(stmt)
        if result.rowcount != 1:
            session.rollback()
            logger.warning(
                "Task %d %s by %s lost a concurrent update", task_id, action.value, actor.id,
            )
            raise TaskStateConflict(
                f"Task {task_id} changed before it could be updated; refresh and retry."
            )

        session.refresh(task)
        if not assignment_consistent(task.status, task.assigned_user_id):
            # Assignee was deleted while the task was in flight
            session.rollback()
            raise TaskStateConflict(f"Task {task_id} has lost its assignee.")

        if edge.awards_points:
            amount = amplified_points(task.points, task.point_amplifier)
            award_points(
                session,
                user_id=task.assigned_user_id,
                amount=amount,
                source=PointSource.TASK_COMPLETION,
                source_ref=f"task:{task.id}",
                metadata={
                    "task_name": task.name,
                    "base_points": task.points,
                    "amplifier": task.point_amplifier,
                    "approved_by": actor.id,
                },
            )

        if edge.permission is not None and action is not TaskAction.APPLY:
            log_action(
                session,
                actor_id=actor.id,
                action_type=AdminActionType.APPROVE,
                target_table="tasks",
                target_id=task.id,
                before={"status": edge.source.value},
                after={"status": edge.target.value},
            )

        session.commit()
        session.refresh(task)
        session.expunge(task)
        logger.info(
            "Task %d: %s → %s (%s by %s)",
            task_id, edge.source.value, edge.target.value, action.value, actor.id,
        )
        return task


def _authorize_and_plan(actor: CurrentUser, task: Task, action: TaskAction) -> Transition:
    """Authorise *actor* for *action* on *task*, then validate the state.

    Authorisation is checked before state.
    """
    edge = TRANSITIONS[action]
    if edge.permission is not None:
        permissions.require(actor.role, edge.permission)
    elif not permissions.is_assignee(task.assigned_user_id, actor.id):
        raise PermissionDenied("Only the assigned user can mark this task as done.")
    return plan_transition(task.status, action)


def apply(engine: Engine, actor: CurrentUser, task_id: int) -> Task:
    return transition(engine, actor, task_id, TaskAction.APPLY)


def approve_application(engine: Engine, actor: CurrentUser, task_id: int) -> Task:
    return transition(engine, actor, task_id, TaskAction.APPROVE_APPLICATION)


def mark_done(engine: Engine, actor: CurrentUser, task_id: int) -> Task:
    return transition(engine, actor, task_id, TaskAction.MARK_DONE)


def approve_completion(engine: Engine, actor: CurrentUser, task_id: int) -> Task:
    return transition(engine, actor, task_id, TaskAction.APPROVE_COMPLETION)


def request_status(engine: Engine, actor: CurrentUser, task_id: int, new_status: str) -> Task:
    """Apply whichever transition produces *new_status*."""
    return transition(engine, actor, task_id, action_for_target(new_status))


# ---------------------------------------------------------------------------
# Amplifier
# ---------------------------------------------------------------------------
def set_amplifier(engine: Engine, actor: CurrentUser, task_id: int, amplifier: float) -> Task:
    """Change ``point_amplifier``; only allowed while the task is Open."""
    permissions.require(actor.role, Action.AMPLIFY_TASK)
    if not AMPLIFIER_MIN <= amplifier <= AMPLIFIER_MAX:
        raise ValidationFailed(
            f"Amplifier must be between {AMPLIFIER_MIN:.2f} and {AMPLIFIER_MAX:.2f}."
        )
    amplifier = round(amplifier, 2)

    with Session(engine, expire_on_commit=False) as session:
        task = session.get(Task, task_id)
        if task is None:
            raise NotFound(f"Task {task_id} not found.")
        before = row_to_dict(task)

        result = session.execute(
            update(Task)
            .where(Task.id == task_id, Task.status == TaskStatus.OPEN.value)
            .values(point_amplifier=amplifier)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise TaskStateConflict("The point amplifier can only change while the task is Open.")

        session.refresh(task)
        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.UPDATE,
            target_table="tasks",
            target_id=task.id,
            before=before,
            after=row_to_dict(task),
        )
        session.commit()
        session.refresh(task)
        session.expunge(task)
        return task
