"""
tests/test_permissions.py — Role Gate & Page-Route Tests
=========================================================
Pure functions only; no database.
"""

from __future__ import annotations

import pytest

from clubhub.database.models import Role
from clubhub.engine import permissions
from clubhub.engine.permissions import ALLOWED_ROLES, Action, can, route_redirect
from clubhub.errors import PermissionDenied


class TestRoleSets:
    def test_every_action_has_an_entry(self):
        assert set(ALLOWED_ROLES) == set(Action)

    @pytest.mark.parametrize("action", [
        Action.APPLY_TO_TASK,
        Action.MANAGE_PROJECTS,
        Action.MANAGE_USERS,
        Action.VIEW_TASKS,
        Action.COMPLETE_RECURRING_TASK,
    ])
    def test_visitor_denied(self, action):
        assert not can(Role.VISITOR, action)

    @pytest.mark.parametrize("action", [Action.REGISTER_FOR_EVENT, Action.QR_CHECK_IN])
    def test_visitor_may_attend(self, action):
        assert can(Role.VISITOR, action)

    def test_member_applies_but_cannot_approve(self):
        assert can(Role.MEMBER, Action.APPLY_TO_TASK)
        assert not can(Role.MEMBER, Action.APPROVE_APPLICATION)
        assert not can(Role.MEMBER, Action.APPROVE_COMPLETION)

    def test_manager_is_not_admin(self):
        assert can(Role.MANAGER, Action.MANAGE_PROJECTS)
        assert not can(Role.MANAGER, Action.MANAGE_USERS)

    def test_admin_can_everything(self):
        assert all(can(Role.ADMIN, action) for action in Action)

    def test_unknown_role_string_is_visitor(self):
        assert permissions.coerce_role("Overlord") is Role.VISITOR
        assert permissions.coerce_role(None) is Role.VISITOR
        assert permissions.coerce_role("Manager") is Role.MANAGER

    def test_require_raises(self):
        with pytest.raises(PermissionDenied):
            permissions.require("Member", Action.MANAGE_USERS)
        permissions.require("Admin", Action.MANAGE_USERS)


class TestAssignee:
    def test_identity_match(self):
        assert permissions.is_assignee("u-1", "u-1")

    def test_other_user(self):
        assert not permissions.is_assignee("u-1", "u-2")

    def test_unassigned(self):
        assert not permissions.is_assignee(None, "u-1")


class TestRouteRedirect:
    @pytest.mark.parametrize("path", ["/impressum", "/attendance/12", "/api/login"])
    def test_public_paths_always_pass(self, path):
        assert route_redirect(path, None) is None

    def test_impressum_is_public_only_as_exact_path(self):
        assert route_redirect("/impressum", None) is None
        assert route_redirect("/impressum/internal", None) == (
            "/login?redirectedFrom=%2Fimpressum%2Finternal"
        )

    def test_unauthenticated_goes_to_login(self):
        assert route_redirect("/dashboard", None) == "/login?redirectedFrom=%2Fdashboard"

    def test_nested_path_is_encoded(self):
        target = route_redirect("/tasks/7", None)
        assert target == "/login?redirectedFrom=%2Ftasks%2F7"

    @pytest.mark.parametrize("path,role", [
        ("/admin", "Manager"),
        ("/manager/reports", "Member"),
        ("/member", "Visitor"),
        ("/tasks", "Visitor"),
        ("/teams", "Visitor"),
    ])
    def test_wrong_role_unauthorized(self, path, role):
        assert route_redirect(path, role) == "/unauthorized"

    @pytest.mark.parametrize("path,role", [
        ("/admin", "Admin"),
        ("/manager", "Manager"),
        ("/member", "Member"),
        ("/tasks", "Manager"),
        ("/dashboard", "Visitor"),
        ("/profile", "Visitor"),
    ])
    def test_allowed(self, path, role):
        assert route_redirect(path, role) is None

    def test_prefix_match_is_segment_based(self):
        assert not permissions.is_gated_path("/administrators-guide")
        assert permissions.is_gated_path("/admin/users")
