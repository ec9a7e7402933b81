"""
clubhub.services.points_service — Points Ledger & Aggregations
===============================================================

Every point a user earns is one row in ``point_transactions``.  The
``(user_id, source, source_ref)`` unique constraint makes each credit
idempotent: crediting the same task completion, event or check-in twice is a
no-op.  ``users.points`` is a cached balance kept in step with the ledger in
the same transaction.

Also home to the read-side aggregations the dashboard needs (leaderboard,
club stats, per-user stats).
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhub.constants import month_start
from clubhub.database.models import (
    AdminActionType,
    AttendanceStatus,
    EventAttendance,
    PointSource,
    PointTransaction,
    RecurringTaskCompletion,
    Task,
    TaskStatus,
    User,
)
from clubhub.errors import NotFound, ValidationFailed
from clubhub.services.audit_service import log_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def award_points(
    session: Session,
    *,
    user_id: str,
    amount: int,
    source: PointSource,
    source_ref: str,
    metadata: dict | None = None,
) -> bool:
    """Credit *amount* points to *user_id* once per ``(source, source_ref)``.

    Runs inside the caller's transaction.  Returns ``True`` if the credit was
    new, ``False`` if the ledger already held it (balance untouched).
    """
    entry = PointTransaction(
        user_id=user_id,
        amount=amount,
        source=source.value,
        source_ref=source_ref,
        metadata_=metadata,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(entry)
            session.flush()
    except IntegrityError:
        # The SAVEPOINT was rolled back; the outer transaction is still usable
        existing = session.scalar(
            select(PointTransaction.id).where(
                PointTransaction.user_id == user_id,
                PointTransaction.source == source.value,
                PointTransaction.source_ref == source_ref,
            )
        )
        if existing is None:
            raise
        logger.info(
            "Duplicate credit ignored: user=%s source=%s ref=%s",
            user_id, source.value, source_ref,
        )
        return False

    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(points=User.points + amount)
    )
    logger.info(
        "Awarded %d points to %s (%s %s)", amount, user_id, source.value, source_ref,
    )
    return True


def award_manual(
    engine: Engine,
    *,
    user_id: str,
    amount: int,
    reason: str,
    actor_id: str,
) -> User:
    """Admin-issued credit (or debit, for corrections) with a unique ref."""
    if amount == 0:
        raise ValidationFailed("Amount must be non-zero.")

    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")

        balance = user.points
        if balance + amount < 0:
            raise ValidationFailed(
                f"Debit of {-amount} exceeds the balance of {balance} points."
            )
        ref = f"manual:{actor_id}:{datetime.now(UTC).isoformat()}"
        try:
            award_points(
                session,
                user_id=user_id,
                amount=amount,
                source=PointSource.MANUAL,
                source_ref=ref,
                metadata={"actor_id": actor_id, "reason": reason},
            )
        except IntegrityError:
            # A concurrent debit got there first; ck_users_points_non_negative
            session.rollback()
            raise ValidationFailed("Debit exceeds the current balance.") from None
        log_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.UPDATE,
            target_table="users",
            target_id=user_id,
            before={"points": balance},
            after={"points": balance + amount},
            reason=reason,
        )
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def _month_start_dt(today: date) -> datetime:
    return datetime.combine(month_start(today), time.min, tzinfo=UTC)


def get_leaderboard(
    engine: Engine,
    *,
    limit: int = 20,
    today: date | None = None,
) -> list[dict]:
    """Users ranked by total points, with this month's earnings alongside."""
    today = today or datetime.now(UTC).date()
    since = _month_start_dt(today)

    with Session(engine) as session:
        monthly = (
            select(
                PointTransaction.user_id.label("user_id"),
                func.sum(PointTransaction.amount).label("monthly_points"),
            )
            .where(PointTransaction.created_at >= since)
            .group_by(PointTransaction.user_id)
            .subquery()
        )
        rows = session.execute(
            select(
                User.id,
                User.email,
                User.points,
                func.coalesce(monthly.c.monthly_points, 0).label("monthly_points"),
            )
            .outerjoin(monthly, monthly.c.user_id == User.id)
            .order_by(User.points.desc(), User.id)
            .limit(limit)
        ).all()

    return [
        {
            "rank": i + 1,
            "user_id": row.id,
            "email": row.email,
            "total_points": row.points,
            "monthly_points": int(row.monthly_points),
        }
        for i, row in enumerate(rows)
    ]


def get_club_stats(engine: Engine) -> dict:
    """Headline numbers for the dashboard."""
    with Session(engine) as session:
        total_users = session.scalar(select(func.count()).select_from(User)) or 0
        total_user_points = session.scalar(
            select(func.coalesce(func.sum(User.points), 0))
        ) or 0
        total_tasks = session.scalar(select(func.count()).select_from(Task)) or 0
        completed_tasks = session.scalar(
            select(func.count()).select_from(Task)
            .where(Task.status == TaskStatus.COMPLETE.value)
        ) or 0
        total_task_points = session.scalar(
            select(func.coalesce(func.sum(Task.points), 0))
        ) or 0

    return {
        "total_users": total_users,
        "total_user_points": int(total_user_points),
        "total_tasks": total_tasks,
        "completed_tasks": completed_tasks,
        "total_task_points": int(total_task_points),
    }


def get_user_stats(engine: Engine, user_id: str) -> dict:
    """Per-user totals shown on profile pages."""
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")

        completed_tasks = session.scalar(
            select(func.count()).select_from(Task).where(
                Task.assigned_user_id == user_id,
                Task.status == TaskStatus.COMPLETE.value,
            )
        ) or 0
        events_attended = session.scalar(
            select(func.count()).select_from(EventAttendance).where(
                EventAttendance.user_id == user_id,
                EventAttendance.status == AttendanceStatus.APPROVED.value,
            )
        ) or 0
        recurring_completions = session.scalar(
            select(func.count()).select_from(RecurringTaskCompletion).where(
                RecurringTaskCompletion.user_id == user_id,
            )
        ) or 0

        return {
            "total_points": user.points,
            "completed_tasks": completed_tasks,
            "events_attended": events_attended,
            "recurring_completions": recurring_completions,
        }


def get_history(engine: Engine, user_id: str, *, limit: int = 50) -> list[PointTransaction]:
    """Most recent ledger rows for *user_id*."""
    with Session(engine) as session:
        rows = session.scalars(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
            .limit(limit)
        ).all()
        session.expunge_all()
        return list(rows)
