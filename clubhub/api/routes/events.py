"""
clubhub.api.routes.events — Events, registration & attendance
===============================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from clubhub.api.deps import get_config, get_current_user, get_engine
from clubhub.config import ClubConfig
from clubhub.database.models import Event, EventAttendance, EventType
from clubhub.engine.identity import CurrentUser
from clubhub.services import event_service

router = APIRouter(prefix="/events", tags=["events"])


class EventCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    event_date: datetime
    description: str | None = None
    event_link: str | None = None
    event_type: str = EventType.INTERNAL.value


class ApproveAttendees(BaseModel):
    attendees: list[str] = Field(default_factory=list)


def _event_dict(e: Event) -> dict:
    return {
        "id": e.id,
        "name": e.name,
        "description": e.description,
        "event_date": e.event_date.isoformat(),
        "event_link": e.event_link,
        "event_type": e.event_type,
        "status": event_service.event_status(e).value,
        "attendees": event_service.attendee_ids(e),
        "created_by": e.created_by,
    }


def _attendance_dict(a: EventAttendance) -> dict:
    return {
        "event_id": a.event_id,
        "user_id": a.user_id,
        "status": a.status,
        "approved_at": a.approved_at.isoformat() if a.approved_at else None,
    }


@router.get("")
def list_events(
    status: str | None = Query(None),
    engine: Engine = Depends(get_engine),
):
    """All events ordered by date; ``status`` filters upcoming/ongoing/past."""
    return [_event_dict(e) for e in event_service.list_events(engine, status=status)]


@router.post("", status_code=201)
def create_event(
    body: EventCreate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    event = event_service.create_event(engine, user, **body.model_dump())
    return _event_dict(event_service.get_event(engine, event.id))


@router.get("/{event_id}")
def get_event(event_id: int, engine: Engine = Depends(get_engine)):
    return _event_dict(event_service.get_event(engine, event_id))


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    event_service.delete_event(engine, user, event_id)
    return {"ok": True}


@router.post("/{event_id}/approve")
def approve_attendees(
    event_id: int,
    body: ApproveAttendees,
    user: CurrentUser = Depends(get_current_user),
    cfg: ClubConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
):
    result = event_service.approve_attendees(
        engine, user, event_id, body.attendees, points=cfg.attendance_points,
    )
    return {"message": "Attendance approved and points awarded", **result}


@router.get("/{event_id}/attend")
def attendance_status(
    event_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return {"status": event_service.registration_status(engine, event_id, user.id)}


@router.post("/{event_id}/attend")
def register(
    event_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    row, created = event_service.register(engine, user, event_id)
    return {**_attendance_dict(row), "created": created}


@router.post("/{event_id}/check-in")
def qr_check_in(
    event_id: int,
    user: CurrentUser = Depends(get_current_user),
    cfg: ClubConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
):
    """Attendance from the event's QR code; credits points once."""
    awarded = event_service.qr_check_in(
        engine, user, event_id, points=cfg.attendance_points,
    )
    return {"message": "Attendance recorded", "points_awarded": awarded}
