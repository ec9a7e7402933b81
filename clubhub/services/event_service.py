"""
clubhub.services.event_service — Events & Attendance
=====================================================

``event_attendances`` is the single record of who attended what.  Both ways
of getting credit write to it:

- **Registration + approval** — a user registers (``registered``); staff
  later approve a batch of user ids, which flips them to ``approved`` and
  credits attendance points.
- **QR check-in** — scanning the event's code approves the caller directly
  and credits the same points.

Credit goes through the ledger under ``event:<id>``, so a user is paid at
most once per event no matter which path (or how many concurrent requests)
got them there.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from clubhub.database.models import (
    AdminActionType,
    AttendanceStatus,
    Event,
    EventAttendance,
    EventStatus,
    EventType,
    PointSource,
)
from clubhub.engine import permissions
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.errors import AlreadyAttended, NotFound, ValidationFailed
from clubhub.services.audit_service import log_action, row_to_dict
from clubhub.services.points_service import award_points

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

NOT_REGISTERED = "not_registered"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def event_status(event: Event, now: datetime | None = None) -> EventStatus:
    """``ongoing`` on the event's UTC calendar day, else upcoming / past."""
    today = _as_utc(now or datetime.now(UTC)).date()
    day = _as_utc(event.event_date).date()
    if day == today:
        return EventStatus.ONGOING
    return EventStatus.UPCOMING if day > today else EventStatus.PAST


def attendee_ids(event: Event) -> list[str]:
    return [a.user_id for a in event.attendances]


def _event_ref(event_id: int) -> str:
    return f"event:{event_id}"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
def list_events(
    engine: Engine,
    *,
    status: str | None = None,
    now: datetime | None = None,
) -> list[Event]:
    """Events ordered by date, optionally filtered by computed status."""
    if status is not None:
        try:
            wanted = EventStatus(status)
        except ValueError:
            raise ValidationFailed(f"Unknown event status {status!r}.") from None
    else:
        wanted = None

    with Session(engine) as session:
        events = session.scalars(
            select(Event)
            .options(selectinload(Event.attendances))
            .order_by(Event.event_date.asc(), Event.id)
        ).all()
        session.expunge_all()

    if wanted is None:
        return list(events)
    return [e for e in events if event_status(e, now) is wanted]


def get_event(engine: Engine, event_id: int) -> Event:
    with Session(engine) as session:
        event = session.scalar(
            select(Event)
            .options(selectinload(Event.attendances))
            .where(Event.id == event_id)
        )
        if event is None:
            raise NotFound(f"Event {event_id} not found.")
        session.expunge_all()
        return event


def create_event(
    engine: Engine,
    actor: CurrentUser,
    *,
    name: str,
    event_date: datetime,
    description: str | None = None,
    event_link: str | None = None,
    event_type: str = EventType.INTERNAL.value,
) -> Event:
    permissions.require(actor.role, Action.MANAGE_EVENTS)
    try:
        event_type = EventType(event_type).value
    except ValueError:
        raise ValidationFailed(f"Unknown event type {event_type!r}.") from None

    with Session(engine, expire_on_commit=False) as session:
        event = Event(
            name=name,
            description=description,
            event_date=event_date,
            event_link=event_link,
            event_type=event_type,
            created_by=actor.id,
        )
        session.add(event)
        session.flush()
        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.CREATE,
            target_table="events",
            target_id=event.id,
            before=None,
            after=row_to_dict(event),
        )
        session.commit()
        session.refresh(event)
        session.expunge(event)
        return event


def delete_event(engine: Engine, actor: CurrentUser, event_id: int) -> None:
    """Delete an event and its attendance rows.  Ledger credits remain."""
    permissions.require(actor.role, Action.MANAGE_EVENTS)
    with Session(engine) as session:
        event = session.get(Event, event_id)
        if event is None:
            raise NotFound(f"Event {event_id} not found.")
        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.DELETE,
            target_table="events",
            target_id=event.id,
            before=row_to_dict(event),
            after=None,
        )
        session.delete(event)
        session.commit()


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------
def _require_event(session: Session, event_id: int) -> Event:
    event = session.get(Event, event_id)
    if event is None:
        raise NotFound(f"Event {event_id} not found.")
    return event


def _insert_attendance(
    session: Session, event_id: int, user_id: str, status: AttendanceStatus,
) -> tuple[EventAttendance, bool]:
    """Insert an attendance row or return the existing one.

    Returns ``(row, created)``.  Relies on the (event_id, user_id) unique
    constraint instead of a read-then-write.
    """
    row = EventAttendance(event_id=event_id, user_id=user_id, status=status.value)
    if status is AttendanceStatus.APPROVED:
        row.approved_at = datetime.now(UTC)
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:
        existing = session.scalar(
            select(EventAttendance).where(
                EventAttendance.event_id == event_id,
                EventAttendance.user_id == user_id,
            )
        )
        if existing is None:
            raise
        return existing, False
    return row, True


def register(engine: Engine, actor: CurrentUser, event_id: int) -> tuple[EventAttendance, bool]:
    """Register the caller for *event_id*.  Repeat calls return the same row."""
    permissions.require(actor.role, Action.REGISTER_FOR_EVENT)
    with Session(engine, expire_on_commit=False) as session:
        _require_event(session, event_id)
        row, created = _insert_attendance(
            session, event_id, actor.id, AttendanceStatus.REGISTERED,
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)
        if created:
            logger.info("User %s registered for event %d", actor.id, event_id)
        return row, created


def registration_status(engine: Engine, event_id: int, user_id: str) -> str:
    """``registered``, ``approved`` or ``not_registered``."""
    with Session(engine) as session:
        status = session.scalar(
            select(EventAttendance.status).where(
                EventAttendance.event_id == event_id,
                EventAttendance.user_id == user_id,
            )
        )
    return status or NOT_REGISTERED


def approve_attendees(
    engine: Engine,
    actor: CurrentUser,
    event_id: int,
    user_ids: list[str],
    *,
    points: int,
) -> dict:
    """Approve registered attendees and credit each one *points* once.

    Ids that never registered are reported back under ``skipped``.
    """
    permissions.require(actor.role, Action.APPROVE_ATTENDANCE)
    wanted = list(dict.fromkeys(user_ids))

    with Session(engine) as session:
        _require_event(session, event_id)
        rows = session.scalars(
            select(EventAttendance).where(
                EventAttendance.event_id == event_id,
                EventAttendance.user_id.in_(wanted),
            )
        ).all()

        now = datetime.now(UTC)
        approved: list[str] = []
        credited = 0
        for row in rows:
            if row.status != AttendanceStatus.APPROVED.value:
                row.status = AttendanceStatus.APPROVED.value
                row.approved_at = now
            approved.append(row.user_id)
            session.flush()
            if award_points(
                session,
                user_id=row.user_id,
                amount=points,
                source=PointSource.EVENT_ATTENDANCE,
                source_ref=_event_ref(event_id),
                metadata={"via": "approval", "approved_by": actor.id},
            ):
                credited += 1

        found = set(approved)
        skipped = [uid for uid in wanted if uid not in found]

        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.APPROVE,
            target_table="event_attendances",
            target_id=event_id,
            before=None,
            after={"approved": approved, "credited": credited, "skipped": skipped},
        )
        session.commit()

    logger.info(
        "Event %d: %d attendee(s) approved, %d credited by %s",
        event_id, len(approved), credited, actor.id,
    )
    return {"approved": approved, "credited": credited, "skipped": skipped}


def qr_check_in(engine: Engine, actor: CurrentUser, event_id: int, *, points: int) -> int:
    """Self-service attendance from the event's QR code.

    Returns the points credited.  Raises :class:`AlreadyAttended` if the
    caller was already credited for this event.
    """
    permissions.require(actor.role, Action.QR_CHECK_IN)
    with Session(engine) as session:
        _require_event(session, event_id)
        row, created = _insert_attendance(
            session, event_id, actor.id, AttendanceStatus.APPROVED,
        )
        if not created and row.status != AttendanceStatus.APPROVED.value:
            row.status = AttendanceStatus.APPROVED.value
            row.approved_at = datetime.now(UTC)
            session.flush()

        if not award_points(
            session,
            user_id=actor.id,
            amount=points,
            source=PointSource.EVENT_ATTENDANCE,
            source_ref=_event_ref(event_id),
            metadata={"via": "qr"},
        ):
            session.rollback()
            raise AlreadyAttended("You have already attended this event and received points.")

        session.commit()

    logger.info("User %s checked in to event %d (+%d)", actor.id, event_id, points)
    return points
