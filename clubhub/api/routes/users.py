"""
clubhub.api.routes.users — User administration (Admin only)
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from clubhub.api.deps import get_current_user, get_engine, requires
from clubhub.api.routes.public import ledger_dict
from clubhub.database.models import AdminLog, User
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.services import audit_service, points_service, user_service

router = APIRouter(tags=["users"])


class RoleChange(BaseModel):
    user_id: str
    new_role: str


class ManualAward(BaseModel):
    amount: int
    reason: str = Field(default="", max_length=500)


def user_dict(u: User) -> dict:
    return {
        "id": u.id,
        "email": u.email,
        "role": u.role,
        "points": u.points,
        "last_login": u.last_login.isoformat() if u.last_login else None,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


@router.get("/users")
def list_users(
    q: str = Query(""),
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return {"users": [user_dict(u) for u in user_service.list_users(engine, user, q=q)]}


@router.patch("/users")
def set_role(
    body: RoleChange,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    updated = user_service.set_role(
        engine, user, user_id=body.user_id, new_role=body.new_role,
    )
    return {"message": "User role updated successfully", "user": user_dict(updated)}


@router.get("/users/{user_id}")
def get_user(
    user_id: str,
    _admin: CurrentUser = Depends(requires(Action.MANAGE_USERS)),
    engine: Engine = Depends(get_engine),
):
    """Profile, stats and recent ledger entries for one user."""
    target = user_service.get_user(engine, user_id)
    return {
        **user_dict(target),
        "stats": points_service.get_user_stats(engine, user_id),
        "history": [ledger_dict(t) for t in points_service.get_history(engine, user_id, limit=20)],
    }


@router.post("/users/{user_id}/points")
def award_manual(
    user_id: str,
    body: ManualAward,
    admin: CurrentUser = Depends(requires(Action.MANAGE_USERS)),
    engine: Engine = Depends(get_engine),
):
    """Credit (or, with a negative amount, debit) points by hand."""
    updated = points_service.award_manual(
        engine,
        user_id=user_id,
        amount=body.amount,
        reason=body.reason,
        actor_id=admin.id,
    )
    return user_dict(updated)


def _audit_dict(row: AdminLog) -> dict:
    return {
        "id": row.id,
        "actor_id": row.actor_id,
        "action_type": row.action_type,
        "target_table": row.target_table,
        "target_id": row.target_id,
        "before": row.before_snapshot,
        "after": row.after_snapshot,
        "reason": row.reason,
        "timestamp": row.timestamp.isoformat() if row.timestamp else None,
    }


@router.get("/audit")
def get_audit(
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=100),
    _admin: CurrentUser = Depends(requires(Action.MANAGE_USERS)),
    engine: Engine = Depends(get_engine),
):
    total, rows = audit_service.get_audit_log(engine, page=page, page_size=page_size)
    return {
        "total": total,
        "page": page,
        "page_size": page_size,
        "entries": [_audit_dict(r) for r in rows],
    }
