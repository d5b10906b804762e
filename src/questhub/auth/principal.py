"""Principals and the single capability check used at the core boundary.

Every core operation receives an explicit Principal instead of reading an
ambient "current user". ``authorize`` is the only place role rules live.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from questhub.errors import PermissionDenied


class Role(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"


class Action(str, enum.Enum):
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"
    VIEW_TASK = "view_task"
    JOIN_TASK = "join_task"
    LEAVE_TASK = "leave_task"
    SUBMIT_STEP = "submit_step"
    REVIEW_SUBMISSION = "review_submission"
    VIEW_PARTICIPANTS = "view_participants"
    VIEW_PENDING = "view_pending"
    ADJUST_POINTS = "adjust_points"
    VIEW_INTEGRITY = "view_integrity"
    DELETE_USER = "delete_user"
    CHANGE_ROLE = "change_role"
    VIEW_USER = "view_user"
    MANAGE_INVITES = "manage_invites"
    MANAGE_COMPANIES = "manage_companies"
    VIEW_COMPANY = "view_company"
    READ_NOTIFICATIONS = "read_notifications"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller. ``role`` is always the stored role."""

    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


ADMIN_ONLY = frozenset({
    Action.CREATE_TASK,
    Action.UPDATE_TASK,
    Action.DELETE_TASK,
    Action.DELETE_USER,
    Action.CHANGE_ROLE,
    Action.MANAGE_INVITES,
    Action.MANAGE_COMPANIES,
    Action.VIEW_INTEGRITY,
})

# Actions any authenticated principal may perform on its own behalf
SELF_SERVICE = frozenset({
    Action.VIEW_TASK,
    Action.JOIN_TASK,
    Action.LEAVE_TASK,
    Action.SUBMIT_STEP,
})

# Manager actions scoped to tasks the manager is assigned to
TASK_SCOPED = frozenset({
    Action.REVIEW_SUBMISSION,
    Action.VIEW_PARTICIPANTS,
})


def authorize(principal: Principal, action: Action, resource: Any = None) -> None:
    """Raise PermissionDenied unless ``principal`` may perform ``action`` on ``resource``.

    Resource shapes per action:
      - TASK_SCOPED: the Task (its ``assigned_manager_id`` is checked)
      - VIEW_PENDING: unused, managers see their own queue
      - ADJUST_POINTS, VIEW_COMPANY: a bool, True when the principal shares
        a company with the target
      - VIEW_USER, READ_NOTIFICATIONS: the owning user_id
    """
    if principal.is_admin:
        return

    if action in ADMIN_ONLY:
        raise PermissionDenied("Admin access required.")

    if action in SELF_SERVICE:
        return

    if action in TASK_SCOPED:
        if principal.role is Role.MANAGER and getattr(resource, "assigned_manager_id", None) == principal.user_id:
            return
        raise PermissionDenied("Only the task's assigned manager can do this.")

    if action is Action.VIEW_PENDING:
        if principal.role is Role.MANAGER:
            return
        raise PermissionDenied("Manager access required.")

    if action is Action.ADJUST_POINTS:
        if principal.role is Role.MANAGER and resource is True:
            return
        raise PermissionDenied("Managers can only adjust points for users in their companies.")

    if action is Action.VIEW_COMPANY:
        if resource is True:
            return
        raise PermissionDenied("You are not a member of this company.")

    if action in (Action.VIEW_USER, Action.READ_NOTIFICATIONS):
        if resource == principal.user_id:
            return
        raise PermissionDenied()

    raise PermissionDenied()
