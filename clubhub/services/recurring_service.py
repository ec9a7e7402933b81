"""
clubhub.services.recurring_service — Recurring Tasks & Weekly Check-in
=======================================================================

Recurring tasks can be completed once per user per UTC calendar day; the
``uq_recurring_completions_task_user_day`` constraint enforces it and this
module only translates the violation into :class:`AlreadyCompletedToday`.

The weekly check-in has no table of its own: the ledger ref
``week:<YYYY>-W<ww>`` is the once-per-ISO-week guard.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhub.constants import iso_week_key, next_monday
from clubhub.database.models import (
    PointSource,
    PointTransaction,
    RecurringTask,
    RecurringTaskCompletion,
)
from clubhub.engine import permissions
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.errors import AlreadyCheckedIn, AlreadyCompletedToday, NotFound
from clubhub.services.points_service import award_points

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def utc_today() -> date:
    return datetime.now(UTC).date()


def list_recurring_tasks(engine: Engine) -> list[RecurringTask]:
    with Session(engine) as session:
        tasks = session.scalars(
            select(RecurringTask)
            .where(RecurringTask.active.is_(True))
            .order_by(RecurringTask.id)
        ).all()
        session.expunge_all()
        return list(tasks)


def get_recurring_task(engine: Engine, task_id: int) -> RecurringTask:
    with Session(engine) as session:
        task = session.get(RecurringTask, task_id)
        if task is None:
            raise NotFound(f"Recurring task {task_id} not found.")
        session.expunge(task)
        return task


def can_complete(
    engine: Engine, task_id: int, user_id: str, today: date | None = None,
) -> bool:
    """True if *user_id* has not completed *task_id* today."""
    today = today or utc_today()
    with Session(engine) as session:
        existing = session.scalar(
            select(RecurringTaskCompletion.id).where(
                RecurringTaskCompletion.recurring_task_id == task_id,
                RecurringTaskCompletion.user_id == user_id,
                RecurringTaskCompletion.completed_on == today,
            )
        )
    return existing is None


def complete(
    engine: Engine, actor: CurrentUser, task_id: int, today: date | None = None,
) -> int:
    """Record today's completion and credit the task's points.

    Returns the points credited.
    """
    permissions.require(actor.role, Action.COMPLETE_RECURRING_TASK)
    today = today or utc_today()

    with Session(engine) as session:
        task = session.get(RecurringTask, task_id)
        if task is None or not task.active:
            raise NotFound(f"Recurring task {task_id} not found.")

        try:
            with session.begin_nested():
                session.add(RecurringTaskCompletion(
                    recurring_task_id=task_id,
                    user_id=actor.id,
                    completed_on=today,
                ))
                session.flush()
        except IntegrityError:
            session.rollback()
            raise AlreadyCompletedToday("You have already completed this task today.") from None

        award_points(
            session,
            user_id=actor.id,
            amount=task.points,
            source=PointSource.RECURRING_TASK,
            source_ref=f"recurring:{task_id}:{today.isoformat()}",
            metadata={"task_name": task.name},
        )
        points = task.points
        session.commit()

    logger.info("User %s completed recurring task %d on %s", actor.id, task_id, today)
    return points


def has_checked_in_this_week(engine: Engine, user_id: str, today: date | None = None) -> bool:
    week = iso_week_key(today or utc_today())
    with Session(engine) as session:
        existing = session.scalar(
            select(PointTransaction.id).where(
                PointTransaction.user_id == user_id,
                PointTransaction.source == PointSource.WEEKLY_CHECKIN.value,
                PointTransaction.source_ref == f"week:{week}",
            )
        )
    return existing is not None


def weekly_check_in(
    engine: Engine, actor: CurrentUser, *, points: int, today: date | None = None,
) -> int:
    """Credit the weekly check-in bonus once per ISO week.

    Raises :class:`AlreadyCheckedIn` (carrying next Monday) on a repeat.
    """
    permissions.require(actor.role, Action.WEEKLY_CHECK_IN)
    today = today or utc_today()
    week = iso_week_key(today)

    with Session(engine) as session:
        credited = award_points(
            session,
            user_id=actor.id,
            amount=points,
            source=PointSource.WEEKLY_CHECKIN,
            source_ref=f"week:{week}",
            metadata={"week": week},
        )
        if not credited:
            session.rollback()
            raise AlreadyCheckedIn(next_monday(today))
        session.commit()

    logger.info("User %s checked in for %s (+%d)", actor.id, week, points)
    return points
