"""
clubhub.api.routes.recurring — Recurring tasks & weekly check-in
==================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from clubhub.api.deps import get_config, get_current_user, get_engine
from clubhub.config import ClubConfig
from clubhub.constants import iso_week_key, next_monday
from clubhub.database.models import RecurringTask
from clubhub.engine.identity import CurrentUser
from clubhub.services import recurring_service

router = APIRouter(tags=["recurring"])


def _recurring_dict(t: RecurringTask) -> dict:
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "type": t.type,
        "points": t.points,
    }


@router.get("/recurring-tasks")
def list_recurring_tasks(engine: Engine = Depends(get_engine)):
    return [_recurring_dict(t) for t in recurring_service.list_recurring_tasks(engine)]


@router.get("/recurring-tasks/{task_id}")
def can_complete(
    task_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    recurring_service.get_recurring_task(engine, task_id)
    return {"can_complete": recurring_service.can_complete(engine, task_id, user.id)}


@router.post("/recurring-tasks/{task_id}")
def complete(
    task_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    awarded = recurring_service.complete(engine, user, task_id)
    return {"message": "Task completed", "points_awarded": awarded}


@router.get("/checkin/weekly")
def weekly_status(
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    today = recurring_service.utc_today()
    done = recurring_service.has_checked_in_this_week(engine, user.id, today)
    return {
        "week": iso_week_key(today),
        "checked_in": done,
        "next_available": next_monday(today).isoformat() if done else today.isoformat(),
    }


@router.post("/checkin/weekly")
def weekly_check_in(
    user: CurrentUser = Depends(get_current_user),
    cfg: ClubConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
):
    awarded = recurring_service.weekly_check_in(
        engine, user, points=cfg.weekly_checkin_points,
    )
    return {"message": "Checked in", "points_awarded": awarded}
