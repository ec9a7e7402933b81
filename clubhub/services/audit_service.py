"""
clubhub.services.audit_service — Audit Trail Helpers
=====================================================

Every privileged mutation (role changes, project/event CRUD, amplifier
changes, attendance approvals) writes one ``admin_log`` row in the *same*
transaction as the change itself:

  1. Read "before" snapshot
  2. Apply change
  3. Write admin_log with before/after JSONB
  4. Commit
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clubhub.database.models import AdminActionType, AdminLog

logger = logging.getLogger(__name__)


def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key if col.key != "metadata" else "metadata_", None)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_action(
    session: Session,
    *,
    actor_id: str,
    action_type: AdminActionType,
    target_table: str,
    target_id: str | int | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type.value,
        target_table=target_table,
        target_id=str(target_id) if target_id is not None else None,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))
    logger.info(
        "Audit %s %s/%s by %s", action_type.value, target_table, target_id, actor_id,
    )


def get_audit_log(engine, *, page: int = 1, page_size: int = 25) -> tuple[int, list[AdminLog]]:
    """Return ``(total, rows)`` for one page of the audit log, newest first."""
    with Session(engine) as session:
        total = session.scalar(select(func.count()).select_from(AdminLog)) or 0
        rows = session.scalars(
            select(AdminLog)
            .order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        session.expunge_all()
        return total, list(rows)
