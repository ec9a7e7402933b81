"""
tests/test_project_service.py — Projects & Categories
======================================================
"""

from __future__ import annotations

from datetime import date

import pytest

from clubhub.errors import PermissionDenied, ProjectHasTasks, ValidationFailed
from clubhub.services import audit_service, project_service, task_service


@pytest.fixture
def engine(db_engine):
    return db_engine


class TestProjects:
    def test_create_and_filter(self, engine, users):
        manager = users["manager"]
        project_service.create_project(
            engine, manager, name="Old", status="concluded", start_date=date(2025, 1, 1),
        )
        project_service.create_project(
            engine, manager, name="New", start_date=date(2026, 9, 1),
        )
        assert [p.name for p in project_service.list_projects(engine)] == ["New", "Old"]
        assert [p.name for p in project_service.list_projects(engine, status_filter="active")] == [
            "New"
        ]

    def test_tasks_are_loaded(self, engine, users):
        project = project_service.create_project(engine, users["manager"], name="P")
        task_service.create_task(engine, users["manager"], name="T", project_id=project.id)
        (listed,) = project_service.list_projects(engine)
        assert [t.name for t in listed.tasks] == ["T"]

    def test_member_denied(self, engine, users):
        with pytest.raises(PermissionDenied):
            project_service.create_project(engine, users["member"], name="P")

    def test_bad_dates(self, engine, users):
        with pytest.raises(ValidationFailed):
            project_service.create_project(
                engine, users["manager"], name="P",
                start_date=date(2026, 5, 1), end_date=date(2026, 4, 1),
            )

    def test_update_and_status(self, engine, users):
        project = project_service.create_project(engine, users["manager"], name="P")
        project = project_service.update_project(
            engine, users["manager"], project.id, description="Rebuild the site",
        )
        assert project.description == "Rebuild the site"
        project = project_service.set_status(engine, users["manager"], project.id, "concluded")
        assert project.status == "concluded"
        with pytest.raises(ValidationFailed):
            project_service.set_status(engine, users["manager"], project.id, "paused")

    def test_update_rejects_unknown_fields(self, engine, users):
        project = project_service.create_project(engine, users["manager"], name="P")
        with pytest.raises(ValidationFailed):
            project_service.update_project(engine, users["manager"], project.id, owner="me")

    def test_delete_refused_with_tasks(self, engine, users):
        project = project_service.create_project(engine, users["manager"], name="P")
        task_service.create_task(engine, users["manager"], name="T", project_id=project.id)
        with pytest.raises(ProjectHasTasks):
            project_service.delete_project(engine, users["manager"], project.id)

    def test_delete_empty_is_audited(self, engine, users):
        project = project_service.create_project(engine, users["manager"], name="P")
        project_service.delete_project(engine, users["manager"], project.id)
        assert project_service.list_projects(engine) == []

        total, rows = audit_service.get_audit_log(engine)
        assert total == 2
        assert [r.action_type for r in rows] == ["DELETE", "CREATE"]


class TestCategories:
    def test_seeded(self, engine):
        names = {c.name for c in project_service.list_categories(engine)}
        assert {"Development", "Design"} <= names

    def test_duplicate_rejected(self, engine, users):
        with pytest.raises(ValidationFailed):
            project_service.create_category(engine, users["manager"], name="Design")
