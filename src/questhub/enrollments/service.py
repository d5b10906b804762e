"""Joining and leaving tasks.

Leaving undoes everything the user did on the task: their credited points
for its steps are reversed, their submissions and the notifications about
them are deleted, then the enrollment row goes. A later rejoin starts from
NOT_STARTED on every step.
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.clock import is_past, utcnow
from questhub.db.models import Notification, StepSubmission, Task, TaskEnrollment, TaskStep
from questhub.errors import AlreadyJoined, NotEnrolled, TaskExpired, TaskInactive, TaskNotFound
from questhub.points import ledger

logger = structlog.get_logger()


async def find_enrollment(db: AsyncSession, task_id: int, user_id: str) -> TaskEnrollment | None:
    result = await db.execute(
        select(TaskEnrollment).where(TaskEnrollment.task_id == task_id, TaskEnrollment.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def join_task(db: AsyncSession, task_id: int, user_id: str) -> TaskEnrollment:
    """Enroll ``user_id`` in an active task whose deadline has not passed."""
    task = await db.get(Task, task_id)
    if task is None:
        raise TaskNotFound()
    if not task.is_active:
        raise TaskInactive()
    if is_past(task.deadline):
        raise TaskExpired()

    if await find_enrollment(db, task_id, user_id) is not None:
        raise AlreadyJoined()

    enrollment = TaskEnrollment(task_id=task_id, user_id=user_id, joined_at=utcnow())
    db.add(enrollment)
    try:
        await db.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent join; the unique constraint decides
        raise AlreadyJoined() from e

    logger.info("task_joined", task_id=task_id, user_id=user_id)
    return enrollment


async def leave_task(db: AsyncSession, task_id: int, user_id: str) -> dict:
    """Withdraw from a task and undo the user's progress on it."""
    await ledger.lock_user(db, user_id)
    enrollment = await find_enrollment(db, task_id, user_id)
    if enrollment is None:
        raise NotEnrolled()

    step_result = await db.execute(select(TaskStep.step_id).where(TaskStep.task_id == task_id))
    step_ids = list(step_result.scalars().all())

    points_removed = 0
    submissions_deleted = 0
    if step_ids:
        own_submissions = select(StepSubmission.submission_id).where(
            StepSubmission.user_id == user_id,
            StepSubmission.step_id.in_(step_ids),
        )
        await db.execute(delete(Notification).where(Notification.submission_id.in_(own_submissions)))
        result = await db.execute(
            delete(StepSubmission).where(
                StepSubmission.user_id == user_id,
                StepSubmission.step_id.in_(step_ids),
            )
        )
        submissions_deleted = result.rowcount

        # submissions first: an approval committed before their deletion is visible here
        points_removed = await ledger.debit(db, user_id, step_ids, reason="task_left")

    await db.execute(delete(TaskEnrollment).where(TaskEnrollment.id == enrollment.id))

    logger.info(
        "task_left",
        task_id=task_id,
        user_id=user_id,
        points_removed=points_removed,
        submissions_deleted=submissions_deleted,
    )
    return {
        "task_id": task_id,
        "user_id": user_id,
        "points_removed": points_removed,
        "submissions_deleted": submissions_deleted,
    }


async def list_user_enrollments(db: AsyncSession, user_id: str) -> list[TaskEnrollment]:
    result = await db.execute(
        select(TaskEnrollment)
        .where(TaskEnrollment.user_id == user_id)
        .order_by(TaskEnrollment.joined_at.desc())
    )
    return list(result.scalars().all())
