"""
clubhub.services.user_service — Profiles, Provisioning & Roles
===============================================================

Profiles are created lazily on first login: the OAuth callback calls
:func:`provision_or_touch`, which inserts a Visitor with zero points the
first time an identity is seen and only bumps ``last_login`` afterwards.
The primary key makes provisioning race-safe — a concurrent duplicate
insert lands in the IntegrityError branch and becomes a touch.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhub.database.models import AdminActionType, Role, User
from clubhub.engine import permissions
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.errors import NotFound, ValidationFailed
from clubhub.services.audit_service import log_action, row_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def provision_or_touch(engine: Engine, user_id: str, email: str) -> tuple[User, bool]:
    """Ensure a profile exists for an authenticated identity.

    Returns ``(user, created)``.  ``created`` is ``True`` only for the call
    that actually inserted the row.
    """
    now = datetime.now(UTC)
    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            user = User(
                id=user_id,
                email=email,
                role=Role.VISITOR.value,
                points=0,
                last_login=now,
            )
            try:
                with session.begin_nested():
                    session.add(user)
                    session.flush()
            except IntegrityError:
                # Lost the race to a concurrent first login
                user = session.get(User, user_id)
                if user is None:
                    raise
                user.last_login = now
                created = False
            else:
                created = True
                logger.info("Provisioned new profile %s (%s) as Visitor", user_id, email)
        else:
            user.last_login = now
            created = False

        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user, created


def get_role(engine: Engine, email: str) -> Role:
    """Role lookup keyed by email.  Unknown emails are Visitors."""
    with Session(engine) as session:
        role = session.scalar(select(User.role).where(User.email == email))
    return permissions.coerce_role(role)


def resolve_identity(engine: Engine, user_id: str, email: str) -> CurrentUser | None:
    """Build the request identity from the profile row, or ``None`` if the
    profile no longer exists."""
    with Session(engine) as session:
        user = session.scalar(select(User).where(User.email == email))
        if user is None or user.id != user_id:
            return None
        return CurrentUser(
            id=user.id,
            email=user.email,
            role=permissions.coerce_role(user.role),
            points=user.points,
        )


def get_user(engine: Engine, user_id: str) -> User:
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        session.expunge(user)
        return user


def list_users(engine: Engine, actor: CurrentUser, *, q: str = "") -> list[User]:
    """All profiles ordered by email (Admin only)."""
    permissions.require(actor.role, Action.MANAGE_USERS)
    with Session(engine) as session:
        query = select(User).order_by(User.email)
        if q:
            query = query.where(User.email.ilike(f"%{q}%"))
        users = session.scalars(query).all()
        session.expunge_all()
        return list(users)


def set_role(engine: Engine, actor: CurrentUser, *, user_id: str, new_role: str) -> User:
    """Change any user's role (Admin only).  Audited as ROLE_CHANGE."""
    permissions.require(actor.role, Action.MANAGE_USERS)
    try:
        role = Role(new_role)
    except ValueError:
        raise ValidationFailed(f"Unknown role {new_role!r}.") from None

    with Session(engine, expire_on_commit=False) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found.")
        before = row_to_dict(user)
        user.role = role.value
        session.flush()
        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.ROLE_CHANGE,
            target_table="users",
            target_id=user.id,
            before=before,
            after=row_to_dict(user),
        )
        session.commit()
        session.refresh(user)
        session.expunge(user)
        logger.info("Role of %s set to %s by %s", user_id, role.value, actor.id)
        return user
