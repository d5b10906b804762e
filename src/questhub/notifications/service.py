"""Manager notifications.

A notification is addressed to ``manager_id`` and optionally references the
task, submitter, step and submission that produced it. Delivery is by polling
(list / unread count); nothing is pushed.
"""

from __future__ import annotations

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.clock import utcnow
from questhub.db.models import Notification, StepSubmission, Task, TaskStep, User
from questhub.errors import NotificationNotFound, ValidationFailed

logger = structlog.get_logger()

STEP_SUBMITTED = "step_submitted"
STEP_RESUBMITTED = "step_resubmitted"
SYSTEM = "system"

VALID_TYPES = {STEP_SUBMITTED, STEP_RESUBMITTED, SYSTEM}


async def create_notification(
    db: AsyncSession,
    manager_id: str,
    type_: str,
    title: str,
    message: str | None = None,
    *,
    task_id: int | None = None,
    user_id: str | None = None,
    step_id: int | None = None,
    submission_id: int | None = None,
) -> Notification:
    """Persist a notification for ``manager_id``."""
    if type_ not in VALID_TYPES:
        raise ValidationFailed(f"Invalid notification type: {type_}")

    notification = Notification(
        manager_id=manager_id,
        type=type_,
        title=title,
        message=message,
        task_id=task_id,
        user_id=user_id,
        step_id=step_id,
        submission_id=submission_id,
        is_read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    await db.flush()
    return notification


async def notify_manager_on_submit(
    db: AsyncSession,
    task: Task,
    step: TaskStep,
    submitter: User | None,
    submission: StepSubmission,
    resubmission: bool = False,
) -> Notification | None:
    """Tell the task's assigned manager that a step is waiting for review.

    Returns None when the task has no assigned manager.
    """
    if not task.assigned_manager_id:
        return None

    who = (submitter.name or submitter.email) if submitter else None
    who = who or submission.user_id
    if resubmission:
        type_ = STEP_RESUBMITTED
        title = f"Step resubmitted: {step.title}"
        message = f"{who} resubmitted \"{step.title}\" in \"{task.title}\"."
    else:
        type_ = STEP_SUBMITTED
        title = f"New submission: {step.title}"
        message = f"{who} submitted \"{step.title}\" in \"{task.title}\"."

    return await create_notification(
        db,
        task.assigned_manager_id,
        type_,
        title,
        message,
        task_id=task.task_id,
        user_id=submission.user_id,
        step_id=step.step_id,
        submission_id=submission.submission_id,
    )


async def get_notifications(
    db: AsyncSession,
    manager_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Notification], int]:
    """Get a manager's notifications (paginated, most recent first)."""
    offset = (page - 1) * per_page

    total_result = await db.execute(
        select(func.count()).select_from(Notification).where(Notification.manager_id == manager_id)
    )
    total = total_result.scalar_one()

    result = await db.execute(
        select(Notification)
        .where(Notification.manager_id == manager_id)
        .order_by(Notification.created_at.desc(), Notification.notification_id.desc())
        .offset(offset)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


async def get_unread_count(db: AsyncSession, manager_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.manager_id == manager_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()


async def mark_as_read(db: AsyncSession, manager_id: str, notification_id: int) -> None:
    """Mark one of the manager's notifications read. Already-read is a no-op."""
    result = await db.execute(
        select(Notification.is_read).where(
            Notification.notification_id == notification_id,
            Notification.manager_id == manager_id,
        )
    )
    is_read = result.scalar_one_or_none()
    if is_read is None:
        raise NotificationNotFound()
    if is_read:
        return

    await db.execute(
        update(Notification)
        .where(Notification.notification_id == notification_id)
        .values(is_read=True, read_at=utcnow())
    )


async def mark_all_as_read(db: AsyncSession, manager_id: str) -> int:
    """Mark every unread notification read. Returns how many changed."""
    result = await db.execute(
        update(Notification)
        .where(Notification.manager_id == manager_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
    )
    return result.rowcount


async def delete_notification(db: AsyncSession, manager_id: str, notification_id: int) -> None:
    result = await db.execute(
        delete(Notification).where(
            Notification.notification_id == notification_id,
            Notification.manager_id == manager_id,
        )
    )
    if result.rowcount == 0:
        raise NotificationNotFound()


async def delete_read(db: AsyncSession, manager_id: str) -> int:
    """Delete all of the manager's read notifications. Returns how many went."""
    result = await db.execute(
        delete(Notification).where(Notification.manager_id == manager_id, Notification.is_read.is_(True))
    )
    if result.rowcount:
        logger.info("notifications_cleared", manager_id=manager_id, count=result.rowcount)
    return result.rowcount
