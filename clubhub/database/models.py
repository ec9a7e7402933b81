"""
clubhub.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- users                      — Member profiles (identity-provider subject PK)
- categories                 — Task category taxonomy
- projects                   — Club projects that own tasks
- tasks                      — Claimable work items with a five-state lifecycle
- events                     — Club events (internal or public)
- event_attendances          — Authoritative attendance join table
- recurring_tasks            — Repeatable actions (check-ins, meetings)
- recurring_task_completions — One row per user, task and calendar day
- point_transactions         — Append-only points ledger with idempotent insert
- admin_log                  — Append-only audit trail
- oauth_states               — One-time OAuth state tokens
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ClubHub ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    """Club roles.  Listed in display order, lowest privilege first."""
    VISITOR = "Visitor"
    MEMBER = "Member"
    MANAGER = "Manager"
    ADMIN = "Admin"


class TaskStatus(enum.StrEnum):
    OPEN = "Open"
    AWAITING_APPLICANT_APPROVAL = "Awaiting Applicant Approval"
    IN_PROGRESS = "In Progress"
    AWAITING_COMPLETION_APPROVAL = "Awaiting Completion Approval"
    COMPLETE = "Complete"


class ProjectStatus(enum.StrEnum):
    ACTIVE = "active"
    CONCLUDED = "concluded"


class EventType(enum.StrEnum):
    INTERNAL = "Internal"
    PUBLIC = "Public"


class EventStatus(enum.StrEnum):
    """Computed from ``event_date``; never stored."""
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    PAST = "past"


class AttendanceStatus(enum.StrEnum):
    REGISTERED = "registered"
    APPROVED = "approved"


class RecurringTaskType(enum.StrEnum):
    CHECK_IN = "check_in"
    MEETING_PARTICIPATION = "meeting_participation"


class PointSource(enum.StrEnum):
    """Every way a user can earn points.  One ledger row per credit."""
    TASK_COMPLETION = "TASK_COMPLETION"
    EVENT_ATTENDANCE = "EVENT_ATTENDANCE"
    RECURRING_TASK = "RECURRING_TASK"
    WEEKLY_CHECKIN = "WEEKLY_CHECKIN"
    MANUAL = "MANUAL"


class AdminActionType(enum.StrEnum):
    """Categories of privileged mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ROLE_CHANGE = "ROLE_CHANGE"
    APPROVE = "APPROVE"


# ---------------------------------------------------------------------------
# Users — one row per authenticated identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Role.VISITOR.value
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_login: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    transactions: Mapped[list[PointTransaction]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_points_desc", "points"),
        CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} email={self.email!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.ACTIVE.value
    )
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    tasks: Mapped[list[Task]] = relationship(back_populates="project")

    __table_args__ = (
        Index("ix_projects_status_start", "status", "start_date"),
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r} status={self.status}>"


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------
class Task(Base):
    """A unit of club work.

    ``assigned_user_id`` is NULL while the task is Open and is never cleared
    once set.  Status changes go through
    :mod:`clubhub.services.task_service`, which guards every transition with
    a conditional UPDATE.
    """
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    instructions: Mapped[str | None] = mapped_column(Text, default=None)
    urgency: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    point_amplifier: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False
    )
    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(40), nullable=False, default=TaskStatus.OPEN.value
    )
    assigned_user_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    deadline: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    project: Mapped[Project] = relationship(back_populates="tasks")
    category: Mapped[Category | None] = relationship()

    __table_args__ = (
        Index("ix_tasks_project", "project_id"),
        Index("ix_tasks_status", "status"),
        Index("ix_tasks_assignee_status", "assigned_user_id", "status"),
        CheckConstraint(
            "status <> 'Open' OR assigned_user_id IS NULL",
            name="ck_tasks_open_unassigned",
        ),
        CheckConstraint("point_amplifier >= 1.0", name="ck_tasks_amplifier_min"),
    )

    def __repr__(self) -> str:
        return f"<Task id={self.id} name={self.name!r} status={self.status!r}>"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    event_link: Mapped[str | None] = mapped_column(String(500), default=None)
    event_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EventType.INTERNAL.value
    )
    created_by: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    attendances: Mapped[list[EventAttendance]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_events_event_date", "event_date"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# EventAttendance — one row per (event, user); the only attendance record
# ---------------------------------------------------------------------------
class EventAttendance(Base):
    __tablename__ = "event_attendances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AttendanceStatus.REGISTERED.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    event: Mapped[Event] = relationship(back_populates="attendances")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_attendances_event_user"),
        Index("ix_event_attendances_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<EventAttendance event={self.event_id} user={self.user_id!r} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Recurring tasks
# ---------------------------------------------------------------------------
class RecurringTask(Base):
    __tablename__ = "recurring_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    type: Mapped[str] = mapped_column(
        String(30), nullable=False, default=RecurringTaskType.CHECK_IN.value
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<RecurringTask id={self.id} name={self.name!r}>"


class RecurringTaskCompletion(Base):
    """A user completing a recurring task on one calendar day.

    The unique constraint on ``completed_on`` is what enforces the
    once-per-day rule; the service layer only translates the violation.
    """
    __tablename__ = "recurring_task_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recurring_task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recurring_tasks.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    completed_on: Mapped[date] = mapped_column(Date, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "recurring_task_id", "user_id", "completed_on",
            name="uq_recurring_completions_task_user_day",
        ),
        Index("ix_recurring_completions_user", "user_id", "completed_on"),
    )

    def __repr__(self) -> str:
        return (
            f"<RecurringTaskCompletion task={self.recurring_task_id} "
            f"user={self.user_id!r} on={self.completed_on}>"
        )


# ---------------------------------------------------------------------------
# PointTransaction — append-only points ledger
# ---------------------------------------------------------------------------
class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    source_ref: Mapped[str] = mapped_column(String(100), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="transactions")

    __table_args__ = (
        # Idempotent credit: one row per (user, source, source_ref)
        UniqueConstraint(
            "user_id", "source", "source_ref",
            name="uq_point_transactions_user_source_ref",
        ),
        Index("ix_point_transactions_user_time", "user_id", "created_at"),
        Index("ix_point_transactions_time", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointTransaction id={self.id} user={self.user_id!r} "
            f"amount={self.amount} source={self.source}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"


# ---------------------------------------------------------------------------
# OAuthState — one-time CSRF tokens for OAuth callback validation
# ---------------------------------------------------------------------------
class OAuthState(Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_oauth_states_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<OAuthState state={self.state[:8]!r}...>"
