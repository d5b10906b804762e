"""Unit tests for the capability check and the error taxonomy."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from questhub.actions import ActionResult
from questhub.auth.principal import ADMIN_ONLY, Action, Principal, Role, authorize
from questhub.errors import (
    ERROR_STATUS,
    AlreadyJoined,
    NotEnrolled,
    PermissionDenied,
    TaskNotFound,
)

ADMIN = Principal(user_id="admin-1", role=Role.ADMIN)
MANAGER = Principal(user_id="manager-1", role=Role.MANAGER)
USER = Principal(user_id="alice", role=Role.USER)


class TestAuthorize:
    """Role rules for each action."""

    @pytest.mark.parametrize("action", list(Action))
    def test_admin_may_do_everything(self, action):
        authorize(ADMIN, action)

    @pytest.mark.parametrize("action", sorted(ADMIN_ONLY, key=lambda a: a.value))
    def test_admin_only_actions(self, action):
        for who in (MANAGER, USER):
            with pytest.raises(PermissionDenied):
                authorize(who, action)

    @pytest.mark.parametrize("action", [Action.JOIN_TASK, Action.LEAVE_TASK, Action.SUBMIT_STEP, Action.VIEW_TASK])
    def test_self_service_actions(self, action):
        authorize(USER, action)
        authorize(MANAGER, action)

    def test_manager_reviews_only_assigned_tasks(self):
        own = SimpleNamespace(assigned_manager_id="manager-1")
        other = SimpleNamespace(assigned_manager_id="manager-2")
        authorize(MANAGER, Action.REVIEW_SUBMISSION, own)
        with pytest.raises(PermissionDenied):
            authorize(MANAGER, Action.REVIEW_SUBMISSION, other)
        with pytest.raises(PermissionDenied):
            authorize(MANAGER, Action.REVIEW_SUBMISSION, None)

    def test_user_cannot_review_even_when_named_manager(self):
        """The stored role decides, not the task's manager column."""
        task = SimpleNamespace(assigned_manager_id="alice")
        with pytest.raises(PermissionDenied):
            authorize(USER, Action.REVIEW_SUBMISSION, task)

    def test_pending_queue_is_for_managers(self):
        authorize(MANAGER, Action.VIEW_PENDING)
        with pytest.raises(PermissionDenied):
            authorize(USER, Action.VIEW_PENDING)

    def test_manager_adjusts_points_within_company(self):
        authorize(MANAGER, Action.ADJUST_POINTS, True)
        with pytest.raises(PermissionDenied):
            authorize(MANAGER, Action.ADJUST_POINTS, False)
        with pytest.raises(PermissionDenied):
            authorize(USER, Action.ADJUST_POINTS, True)

    def test_view_user_is_self_only(self):
        authorize(USER, Action.VIEW_USER, "alice")
        with pytest.raises(PermissionDenied):
            authorize(USER, Action.VIEW_USER, "bob")


class TestErrorTaxonomy:
    """Error kinds and their HTTP statuses."""

    def test_status_table(self):
        assert ERROR_STATUS["not_found"] == 404
        assert ERROR_STATUS["conflict"] == 409
        assert ERROR_STATUS["invalid_state"] == 409
        assert ERROR_STATUS["permission_denied"] == 403
        assert ERROR_STATUS["expired"] == 410
        assert ERROR_STATUS["validation_error"] == 422
        assert ERROR_STATUS["storage_error"] == 500

    def test_subclasses_inherit_kind(self):
        assert TaskNotFound().kind == "not_found"
        assert AlreadyJoined().kind == "conflict"
        assert NotEnrolled().kind == "invalid_state"

    def test_default_and_custom_messages(self):
        assert TaskNotFound().message == "Task not found"
        assert TaskNotFound("gone").message == "gone"

    def test_fail_result(self):
        result = ActionResult.fail(AlreadyJoined())
        assert result.success is False
        assert result.error == "conflict"
        assert result.message == "You have already joined this task."
        assert result.data is None
