"""Initial ClubHub schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create users, work, events, recurring tasks, ledger and audit tables."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="Visitor"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
    )
    op.create_index("ix_users_points_desc", "users", ["points"])

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_projects_status_start", "projects", ["status", "start_date"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("urgency", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("difficulty", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("point_amplifier", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column(
            "project_id", sa.Integer(),
            sa.ForeignKey("projects.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column(
            "category_id", sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("status", sa.String(40), nullable=False, server_default="Open"),
        sa.Column(
            "assigned_user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "created_by", sa.String(64),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        _created_at(),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        # Open ⇒ unassigned
        sa.CheckConstraint(
            "status <> 'Open' OR assigned_user_id IS NULL",
            name="ck_tasks_open_unassigned",
        ),
        sa.CheckConstraint("point_amplifier >= 1.0", name="ck_tasks_amplifier_min"),
    )
    op.create_index("ix_tasks_project", "tasks", ["project_id"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_assignee_status", "tasks", ["assigned_user_id", "status"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("event_link", sa.String(500), nullable=True),
        sa.Column("event_type", sa.String(20), nullable=False, server_default="Internal"),
        sa.Column(
            "created_by", sa.String(64),
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        _created_at(),
    )
    op.create_index("ix_events_event_date", "events", ["event_date"])

    op.create_table(
        "event_attendances",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "event_id", sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="registered"),
        _created_at(),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_attendances_event_user"),
    )
    op.create_index("ix_event_attendances_user", "event_attendances", ["user_id"])

    op.create_table(
        "recurring_tasks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("type", sa.String(30), nullable=False, server_default="check_in"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
    )

    op.create_table(
        "recurring_task_completions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "recurring_task_id", sa.Integer(),
            sa.ForeignKey("recurring_tasks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("completed_on", sa.Date(), nullable=False),
        sa.Column(
            "completed_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "recurring_task_id", "user_id", "completed_on",
            name="uq_recurring_completions_task_user_day",
        ),
    )
    op.create_index(
        "ix_recurring_completions_user",
        "recurring_task_completions",
        ["user_id", "completed_on"],
    )

    op.create_table(
        "point_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("source_ref", sa.String(100), nullable=False),
        sa.Column("metadata", JSONB(), nullable=True),
        _created_at(),
        sa.UniqueConstraint(
            "user_id", "source", "source_ref",
            name="uq_point_transactions_user_source_ref",
        ),
    )
    op.create_index(
        "ix_point_transactions_user_time", "point_transactions", ["user_id", "created_at"],
    )
    op.create_index("ix_point_transactions_time", "point_transactions", ["created_at"])

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", JSONB(), nullable=True),
        sa.Column("after_snapshot", JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_oauth_states_created_at", "oauth_states", ["created_at"])


def downgrade() -> None:
    for table in (
        "oauth_states",
        "admin_log",
        "point_transactions",
        "recurring_task_completions",
        "recurring_tasks",
        "event_attendances",
        "events",
        "tasks",
        "projects",
        "categories",
        "users",
    ):
        op.drop_table(table)
