"""
clubhub.api.routes.public — Leaderboard, club stats & profiles
================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from clubhub.api.deps import get_config, get_current_user, get_engine
from clubhub.api.routes.tasks import task_dict
from clubhub.config import ClubConfig
from clubhub.constants import RANK_BADGES, shorten_email
from clubhub.database.models import PointTransaction
from clubhub.engine.identity import CurrentUser
from clubhub.services import points_service, task_service, user_service

router = APIRouter(tags=["public"])


def ledger_dict(t: PointTransaction) -> dict:
    return {
        "amount": t.amount,
        "source": t.source,
        "source_ref": t.source_ref,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }


# ---------------------------------------------------------------------------
# GET /leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    limit: int = Query(20, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    """Top members by total points, with this month's points alongside."""
    rows = points_service.get_leaderboard(engine, limit=limit)
    return [
        {
            **row,
            "email": shorten_email(row["email"]),
            "badge": RANK_BADGES[row["rank"] - 1] if row["rank"] <= len(RANK_BADGES) else None,
        }
        for row in rows
    ]


# ---------------------------------------------------------------------------
# GET /stats/club
# ---------------------------------------------------------------------------
@router.get("/stats/club")
def get_club_stats(
    cfg: ClubConfig = Depends(get_config),
    engine: Engine = Depends(get_engine),
):
    return {
        "club_name": cfg.club_name,
        "club_motto": cfg.club_motto,
        **points_service.get_club_stats(engine),
        "recent_tasks": [task_dict(t) for t in task_service.recent_tasks(engine)],
    }


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
@router.get("/me")
def get_me(
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    """The caller's own profile, stats and recent point history."""
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role.value,
        "stats": points_service.get_user_stats(engine, user.id),
        "history": [ledger_dict(t) for t in points_service.get_history(engine, user.id, limit=20)],
    }


@router.get("/profiles/{user_id}")
def get_profile(
    user_id: str,
    _viewer: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    target = user_service.get_user(engine, user_id)
    return {
        "id": target.id,
        "email": shorten_email(target.email),
        "role": target.role,
        "stats": points_service.get_user_stats(engine, user_id),
    }
