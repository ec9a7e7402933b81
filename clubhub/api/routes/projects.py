"""
clubhub.api.routes.projects — Projects & categories
=====================================================
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from clubhub.api.deps import get_current_user, get_engine, requires
from clubhub.api.routes.tasks import task_dict
from clubhub.database.models import Category, Project, ProjectStatus
from clubhub.engine.identity import CurrentUser
from clubhub.engine.permissions import Action
from clubhub.services import project_service

router = APIRouter(tags=["projects"])


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    status: str = ProjectStatus.ACTIVE.value
    start_date: date | None = None
    end_date: date | None = None


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    status: str | None = None
    start_date: date | None = None
    end_date: date | None = None


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


def _project_dict(p: Project, *, with_tasks: bool = True) -> dict:
    data = {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "status": p.status,
        "start_date": p.start_date.isoformat() if p.start_date else None,
        "end_date": p.end_date.isoformat() if p.end_date else None,
    }
    if with_tasks:
        data["tasks"] = [task_dict(t) for t in p.tasks]
    return data


def _category_dict(c: Category) -> dict:
    return {"id": c.id, "name": c.name}


@router.get("/projects")
def list_projects(
    status: str = Query("all"),
    _user: CurrentUser = Depends(requires(Action.VIEW_TASKS)),
    engine: Engine = Depends(get_engine),
):
    projects = project_service.list_projects(engine, status_filter=status)
    return [_project_dict(p) for p in projects]


@router.post("/projects", status_code=201)
def create_project(
    body: ProjectCreate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    project = project_service.create_project(engine, user, **body.model_dump())
    return _project_dict(project, with_tasks=False)


@router.get("/projects/{project_id}")
def get_project(
    project_id: int,
    _user: CurrentUser = Depends(requires(Action.VIEW_TASKS)),
    engine: Engine = Depends(get_engine),
):
    return _project_dict(project_service.get_project(engine, project_id))


@router.patch("/projects/{project_id}")
def update_project(
    project_id: int,
    body: ProjectUpdate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    project = project_service.update_project(
        engine, user, project_id, **body.model_dump(exclude_unset=True),
    )
    return _project_dict(project, with_tasks=False)


@router.delete("/projects/{project_id}")
def delete_project(
    project_id: int,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    project_service.delete_project(engine, user, project_id)
    return {"ok": True}


@router.get("/categories")
def list_categories(engine: Engine = Depends(get_engine)):
    return [_category_dict(c) for c in project_service.list_categories(engine)]


@router.post("/categories", status_code=201)
def create_category(
    body: CategoryCreate,
    user: CurrentUser = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    return _category_dict(project_service.create_category(engine, user, name=body.name))
