"""
clubhub.services.project_service — Projects & Categories
=========================================================

Audited CRUD for projects (Manager/Admin).  A project that still owns tasks
cannot be deleted; tasks are never orphaned or silently removed.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from clubhub.database.models import (
    AdminActionType,
    Category,
    Project,
    ProjectStatus,
    Task,
)
from clubhub.engine import permissions
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.errors import NotFound, ProjectHasTasks, ValidationFailed
from clubhub.services.audit_service import log_action, row_to_dict

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

_STATUS_FILTERS = frozenset({"active", "concluded", "all"})
_EDITABLE_FIELDS = ("name", "description", "status", "start_date", "end_date")


def _check_status(status: str) -> str:
    try:
        return ProjectStatus(status).value
    except ValueError:
        raise ValidationFailed(f"Unknown project status {status!r}.") from None


def _check_dates(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationFailed("end_date must not be before start_date.")


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
def list_projects(engine: Engine, *, status_filter: str = "all") -> list[Project]:
    """Projects (with their tasks loaded), most recently started first."""
    if status_filter not in _STATUS_FILTERS:
        raise ValidationFailed(f"status must be one of {sorted(_STATUS_FILTERS)}.")

    with Session(engine) as session:
        query = (
            select(Project)
            .options(selectinload(Project.tasks))
            .order_by(Project.start_date.desc(), Project.id.desc())
        )
        if status_filter != "all":
            query = query.where(Project.status == status_filter)
        projects = session.scalars(query).all()
        session.expunge_all()
        return list(projects)


def get_project(engine: Engine, project_id: int) -> Project:
    with Session(engine) as session:
        project = session.scalar(
            select(Project)
            .options(selectinload(Project.tasks))
            .where(Project.id == project_id)
        )
        if project is None:
            raise NotFound(f"Project {project_id} not found.")
        session.expunge_all()
        return project


def create_project(
    engine: Engine,
    actor: CurrentUser,
    *,
    name: str,
    description: str | None = None,
    status: str = ProjectStatus.ACTIVE.value,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Project:
    permissions.require(actor.role, Action.MANAGE_PROJECTS)
    _check_dates(start_date, end_date)

    with Session(engine, expire_on_commit=False) as session:
        project = Project(
            name=name,
            description=description,
            status=_check_status(status),
            start_date=start_date,
            end_date=end_date,
        )
        session.add(project)
        session.flush()
        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.CREATE,
            target_table="projects",
            target_id=project.id,
            before=None,
            after=row_to_dict(project),
        )
        session.commit()
        session.refresh(project)
        session.expunge(project)
        return project


def update_project(
    engine: Engine,
    actor: CurrentUser,
    project_id: int,
    **changes: Any,
) -> Project:
    """Apply *changes* (any of name, description, status, start/end date)."""
    permissions.require(actor.role, Action.MANAGE_PROJECTS)
    unknown = set(changes) - set(_EDITABLE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Cannot update fields: {sorted(unknown)}.")
    if not changes:
        raise ValidationFailed("No fields to update.")
    if "status" in changes:
        changes["status"] = _check_status(changes["status"])

    with Session(engine, expire_on_commit=False) as session:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found.")
        before = row_to_dict(project)
        for key, value in changes.items():
            setattr(project, key, value)
        _check_dates(project.start_date, project.end_date)
        session.flush()
        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.UPDATE,
            target_table="projects",
            target_id=project.id,
            before=before,
            after=row_to_dict(project),
        )
        session.commit()
        session.refresh(project)
        session.expunge(project)
        return project


def set_status(engine: Engine, actor: CurrentUser, project_id: int, status: str) -> Project:
    return update_project(engine, actor, project_id, status=status)


def delete_project(engine: Engine, actor: CurrentUser, project_id: int) -> None:
    """Delete an empty project.  Raises :class:`ProjectHasTasks` otherwise."""
    permissions.require(actor.role, Action.MANAGE_PROJECTS)
    with Session(engine) as session:
        project = session.get(Project, project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found.")

        task_count = session.scalar(
            select(func.count()).select_from(Task).where(Task.project_id == project_id)
        ) or 0
        if task_count:
            raise ProjectHasTasks(
                f"Project {project_id} still has {task_count} task(s); move or finish them first."
            )

        log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.DELETE,
            target_table="projects",
            target_id=project.id,
            before=row_to_dict(project),
            after=None,
        )
        session.delete(project)
        try:
            session.commit()
        except IntegrityError:
            # A task was attached between the count and the delete
            session.rollback()
            raise ProjectHasTasks(f"Project {project_id} gained tasks; not deleted.") from None
        logger.info("Project %d deleted by %s", project_id, actor.id)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
def list_categories(engine: Engine) -> list[Category]:
    with Session(engine) as session:
        categories = session.scalars(select(Category).order_by(Category.name)).all()
        session.expunge_all()
        return list(categories)


def create_category(engine: Engine, actor: CurrentUser, *, name: str) -> Category:
    permissions.require(actor.role, Action.MANAGE_PROJECTS)
    with Session(engine, expire_on_commit=False) as session:
        category = Category(name=name)
        session.add(category)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ValidationFailed(f"Category {name!r} already exists.") from None
        session.refresh(category)
        session.expunge(category)
        return category
