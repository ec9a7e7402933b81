"""
clubhub.api.routes.tasks — Task list, creation & lifecycle
============================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from clubhub.api.deps import get_current_user, get_engine, requires
from clubhub.constants import amplified_points
from clubhub.database.models import Task
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.services import points_service, task_service

router = APIRouter(prefix="/tasks", tags=["tasks"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class TaskCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    project_id: int
    instructions: str | None = None
    category_id: int | None = None
    urgency: int = 2
    difficulty: int = 2
    priority: int = 2
    deadline: datetime | None = None


class StatusChange(BaseModel):
    id: int
    new_status: str


class AmplifierChange(BaseModel):
    point_amplifier: float


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def task_dict(t: Task) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "instructions": t.instructions,
        "urgency": t.urgency,
        "difficulty": t.difficulty,
        "priority": t.priority,
        "points": t.points,
        "point_amplifier": t.point_amplifier,
        "amplified_points": amplified_points(t.points, t.point_amplifier),
        "project_id": t.project_id,
        "category_id": t.category_id,
        "status": t.status,
        "assigned_user_id": t.assigned_user_id,
        "created_by": t.created_by,
        "created_at": t.created_at.isoformat() if t.created_at else None,
        "deadline": t.deadline.isoformat() if t.deadline else None,
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_tasks(
    project_id: int | None = Query(None),
    status: str | None = Query(None),
    mine: bool = Query(False),
    user: CurrentUser = Depends(requires(Action.VIEW_TASKS)),
    engine: Engine = Depends(get_engine),
):
    """Tasks plus the caller's role, points and completed-task count."""
    tasks = task_service.list_tasks(
        engine,
        user,
        project_id=project_id,
        status=status,
        assigned_user_id=user.id if mine else None,
    )
    stats = points_service.get_user_stats(engine, user.id)
    return {
        "tasks": [task_dict(t) for t in tasks],
        "user_role": user.role.value,
        "user_points": stats["total_points"],
        "completed_tasks": stats["completed_tasks"],
    }


@router.post("", status_code=201)
def create_task(
    body: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    task = task_service.create_task(engine, user, **body.model_dump())
    return task_dict(task)


@router.patch("")
def change_status(
    body: StatusChange,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """Move a task to *new_status*; the status picks the lifecycle step."""
    task = task_service.request_status(engine, user, body.id, body.new_status)
    return {"message": "Task updated successfully", "task": task_dict(task)}


@router.get("/{task_id}")
def get_task(
    task_id: int,
    user: CurrentUser = Depends(requires(Action.VIEW_TASKS)),
    engine: Engine = Depends(get_engine),
):
    return task_dict(task_service.get_task(engine, task_id))


@router.patch("/{task_id}/amplifier")
def set_amplifier(
    task_id: int,
    body: AmplifierChange,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    task = task_service.set_amplifier(engine, user, task_id, body.point_amplifier)
    return task_dict(task)
