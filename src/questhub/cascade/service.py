"""Cascade deletion of steps, tasks and users.

Foreign keys do not cascade, so every dependent row is removed here in
child-to-parent order. Dependents are found by foreign-key value rather than
through the parent row: if an earlier attempt died half way, running the
same deletion again finishes the job.

Affected users are row-locked first and submissions are deleted before their
points are reversed, so a concurrent approval either lands before the debit
reads the ledger or finds its submission gone. History rows only disappear
through the ledger, so ``users.total_points`` stays equal to the ledger sum.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.auth.identity_provider import BaseIdentityProvider
from questhub.db.models import (
    Company,
    Invite,
    Notification,
    StepSubmission,
    Task,
    TaskEnrollment,
    TaskStep,
    User,
    UserCompany,
    UserPointHistory,
)
from questhub.errors import StepNotFound, TaskNotFound, UserNotFound
from questhub.points import ledger

logger = structlog.get_logger()


@dataclass
class CascadeReport:
    task_id: int | None = None
    step_ids: list[int] = field(default_factory=list)
    submissions_deleted: int = 0
    notifications_deleted: int = 0
    enrollments_deleted: int = 0
    steps_deleted: int = 0
    tasks_deleted: int = 0
    points_reversed: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


async def _any(db: AsyncSession, *conditions) -> bool:
    result = await db.execute(select(or_(*(c.exists() for c in conditions))))
    return bool(result.scalar())


async def _purge_steps(db: AsyncSession, step_ids: list[int], report: CascadeReport, reason: str) -> None:
    """Remove notifications and submissions for ``step_ids``, then reverse their points."""
    if not step_ids:
        return

    affected = await db.execute(
        select(StepSubmission.user_id)
        .where(StepSubmission.step_id.in_(step_ids))
        .union(select(UserPointHistory.user_id).where(UserPointHistory.step_id.in_(step_ids)))
    )
    await ledger.lock_users(db, affected.scalars().all())

    submission_ids = select(StepSubmission.submission_id).where(StepSubmission.step_id.in_(step_ids))
    result = await db.execute(
        delete(Notification).where(
            or_(
                Notification.step_id.in_(step_ids),
                Notification.submission_id.in_(submission_ids),
            )
        )
    )
    report.notifications_deleted += result.rowcount

    result = await db.execute(delete(StepSubmission).where(StepSubmission.step_id.in_(step_ids)))
    report.submissions_deleted += result.rowcount

    for user_id, points in (await ledger.debit_all_users(db, step_ids, reason)).items():
        report.points_reversed[user_id] = report.points_reversed.get(user_id, 0) + points


async def delete_step(db: AsyncSession, step_id: int, reason: str = "step_deleted") -> CascadeReport:
    """Delete one step with its submissions, notifications and credited points."""
    found = await _any(
        db,
        select(TaskStep.step_id).where(TaskStep.step_id == step_id),
        select(StepSubmission.submission_id).where(StepSubmission.step_id == step_id),
        select(UserPointHistory.history_id).where(UserPointHistory.step_id == step_id),
        select(Notification.notification_id).where(Notification.step_id == step_id),
    )
    if not found:
        raise StepNotFound()

    report = CascadeReport(step_ids=[step_id])
    await _purge_steps(db, [step_id], report, reason)

    result = await db.execute(delete(TaskStep).where(TaskStep.step_id == step_id))
    report.steps_deleted = result.rowcount

    logger.info(
        "step_deleted",
        step_id=step_id,
        submissions=report.submissions_deleted,
        points_reversed=sum(report.points_reversed.values()),
    )
    return report


async def delete_task(db: AsyncSession, task_id: int) -> CascadeReport:
    """Delete a task and everything hanging off it.

    Raises TaskNotFound only when neither the task nor any dependent row exists.
    """
    step_result = await db.execute(select(TaskStep.step_id).where(TaskStep.task_id == task_id))
    step_ids = list(step_result.scalars().all())

    found = step_ids or await _any(
        db,
        select(Task.task_id).where(Task.task_id == task_id),
        select(TaskEnrollment.id).where(TaskEnrollment.task_id == task_id),
        select(Notification.notification_id).where(Notification.task_id == task_id),
    )
    if not found:
        raise TaskNotFound()

    report = CascadeReport(task_id=task_id, step_ids=step_ids)
    await _purge_steps(db, step_ids, report, "task_deleted")

    result = await db.execute(delete(Notification).where(Notification.task_id == task_id))
    report.notifications_deleted += result.rowcount

    if step_ids:
        result = await db.execute(delete(TaskStep).where(TaskStep.task_id == task_id))
        report.steps_deleted = result.rowcount

    result = await db.execute(delete(TaskEnrollment).where(TaskEnrollment.task_id == task_id))
    report.enrollments_deleted = result.rowcount

    result = await db.execute(delete(Task).where(Task.task_id == task_id))
    report.tasks_deleted = result.rowcount

    logger.info(
        "task_deleted",
        task_id=task_id,
        steps=report.steps_deleted,
        submissions=report.submissions_deleted,
        enrollments=report.enrollments_deleted,
        notifications=report.notifications_deleted,
        users_reversed=len(report.points_reversed),
    )
    return report


async def delete_user(
    db: AsyncSession,
    identity: BaseIdentityProvider,
    user_id: str,
) -> dict[str, Any]:
    """Remove a user from the identity provider and purge every row that names them.

    The external deletion runs before any database write. If it fails nothing
    local changes; if the local purge fails afterwards, calling this again is
    safe because the provider treats an unknown user as already deleted.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound()

    await identity.delete_user(user_id)
    await ledger.lock_user(db, user_id)

    own_submissions = select(StepSubmission.submission_id).where(StepSubmission.user_id == user_id)
    counts: dict[str, int] = {}

    result = await db.execute(
        delete(Notification).where(
            or_(
                Notification.manager_id == user_id,
                Notification.user_id == user_id,
                Notification.submission_id.in_(own_submissions),
            )
        )
    )
    counts["notifications"] = result.rowcount

    await db.execute(
        update(StepSubmission).where(StepSubmission.reviewed_by == user_id).values(reviewed_by=None)
    )
    result = await db.execute(delete(StepSubmission).where(StepSubmission.user_id == user_id))
    counts["submissions"] = result.rowcount

    await db.execute(
        update(UserPointHistory).where(UserPointHistory.created_by == user_id).values(created_by=None)
    )
    result = await db.execute(delete(UserPointHistory).where(UserPointHistory.user_id == user_id))
    counts["history"] = result.rowcount

    result = await db.execute(delete(TaskEnrollment).where(TaskEnrollment.user_id == user_id))
    counts["enrollments"] = result.rowcount

    await db.execute(update(UserCompany).where(UserCompany.assigned_by == user_id).values(assigned_by=None))
    result = await db.execute(delete(UserCompany).where(UserCompany.user_id == user_id))
    counts["memberships"] = result.rowcount

    await db.execute(
        update(Task).where(Task.assigned_manager_id == user_id).values(assigned_manager_id=None)
    )
    await db.execute(update(Task).where(Task.created_by == user_id).values(created_by=None))
    await db.execute(update(Company).where(Company.created_by == user_id).values(created_by=None))
    await db.execute(update(Invite).where(Invite.used_by == user_id).values(used_by=None))
    await db.execute(update(Invite).where(Invite.created_by == user_id).values(created_by=None))

    await db.execute(delete(User).where(User.user_id == user_id))

    logger.info("user_deleted", user_id=user_id, **counts)
    return {"user_id": user_id, "deleted": counts}
