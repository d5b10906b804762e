"""Step submission, review and the pending-review queue.

Review moves are conditional updates (``... WHERE status = 'PENDING'``), so
when two reviewers race only one of them changes the row and only that one
credits points.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.auth.principal import Action, Principal, authorize
from questhub.clock import is_past, utcnow
from questhub.config import get_settings
from questhub.db.models import StepSubmission, Task, TaskEnrollment, TaskStep, User
from questhub.errors import (
    AlreadyPending,
    InvalidState,
    NotEnrolled,
    StepNotFound,
    SubmissionNotFound,
    TaskExpired,
    TaskInactive,
    TaskNotFound,
)
from questhub.notifications import service as notifications
from questhub.points import ledger
from questhub.submissions.schemas import PendingSubmissionResponse, SubmissionResponse
from questhub.submissions.state_machine import SubmissionStatus, validate_transition

logger = structlog.get_logger()


async def _get_submission(db: AsyncSession, submission_id: int) -> StepSubmission | None:
    result = await db.execute(
        select(StepSubmission)
        .where(StepSubmission.submission_id == submission_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _find_submission(db: AsyncSession, step_id: int, user_id: str) -> StepSubmission | None:
    result = await db.execute(
        select(StepSubmission)
        .where(StepSubmission.step_id == step_id, StepSubmission.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def submission_read_model(db: AsyncSession, submission_id: int) -> SubmissionResponse:
    """The stored submission plus the submitter's current total."""
    result = await db.execute(
        select(StepSubmission, User.total_points)
        .join(User, User.user_id == StepSubmission.user_id)
        .where(StepSubmission.submission_id == submission_id)
        .execution_options(populate_existing=True)
    )
    row = result.one_or_none()
    if row is None:
        raise SubmissionNotFound()
    sub = row.StepSubmission
    return SubmissionResponse(
        submission_id=sub.submission_id,
        step_id=sub.step_id,
        user_id=sub.user_id,
        status=sub.status,
        submitted_at=sub.submitted_at,
        reviewed_by=sub.reviewed_by,
        reviewed_at=sub.reviewed_at,
        feedback=sub.feedback,
        total_points=row.total_points,
    )


async def _notify_manager(
    db: AsyncSession,
    task: Task,
    step: TaskStep,
    submission: StepSubmission,
    resubmission: bool,
) -> None:
    """Notify the assigned manager inside a savepoint; a failure here never undoes the submission."""
    submission_id, manager_id = submission.submission_id, task.assigned_manager_id
    try:
        async with db.begin_nested():
            submitter = await db.get(User, submission.user_id)
            await notifications.notify_manager_on_submit(
                db, task, step, submitter, submission, resubmission=resubmission
            )
    except Exception:
        logger.exception(
            "notification_failed",
            submission_id=submission_id,
            manager_id=manager_id,
        )


async def submit_step(db: AsyncSession, step_id: int, user_id: str) -> StepSubmission:
    """Submit (or resubmit after rejection) a step for review."""
    step = await db.get(TaskStep, step_id)
    if step is None:
        raise StepNotFound()
    task = await db.get(Task, step.task_id)
    if task is None:
        raise TaskNotFound()

    await ledger.lock_user(db, user_id)
    enrolled = await db.execute(
        select(TaskEnrollment.id).where(TaskEnrollment.task_id == task.task_id, TaskEnrollment.user_id == user_id)
    )
    if enrolled.scalar_one_or_none() is None:
        raise NotEnrolled()
    if not task.is_active:
        raise TaskInactive()
    if is_past(task.deadline):
        raise TaskExpired()

    now = utcnow()
    submission = await _find_submission(db, step_id, user_id)

    if submission is None:
        validate_transition(SubmissionStatus.NOT_STARTED, SubmissionStatus.PENDING)
        submission = StepSubmission(
            step_id=step_id,
            user_id=user_id,
            status=SubmissionStatus.PENDING.value,
            submitted_at=now,
        )
        db.add(submission)
        try:
            await db.flush()
        except IntegrityError as e:
            raise AlreadyPending() from e
        resubmission = False
    else:
        validate_transition(submission.status, SubmissionStatus.PENDING)

        values = {"status": SubmissionStatus.PENDING.value, "submitted_at": now}
        if get_settings().clear_review_on_resubmit:
            values.update(reviewed_by=None, reviewed_at=None, feedback=None)

        result = await db.execute(
            update(StepSubmission)
            .where(
                StepSubmission.submission_id == submission.submission_id,
                StepSubmission.status == SubmissionStatus.REJECTED.value,
            )
            .values(**values)
        )
        if result.rowcount == 0:
            # Someone else resubmitted or the row moved since we read it
            current = await _get_submission(db, submission.submission_id)
            if current is None:
                raise SubmissionNotFound()
            validate_transition(current.status, SubmissionStatus.PENDING)
            raise InvalidState()
        submission = await _get_submission(db, submission.submission_id)
        resubmission = True

    submission_id = submission.submission_id
    await _notify_manager(db, task, step, submission, resubmission)
    # a rolled-back savepoint may have expired the row
    submission = await _get_submission(db, submission_id)

    logger.info(
        "step_submitted",
        submission_id=submission_id,
        step_id=step_id,
        user_id=user_id,
        resubmission=resubmission,
    )
    return submission


async def _review(
    db: AsyncSession,
    submission_id: int,
    reviewer: Principal,
    target: SubmissionStatus,
    feedback: str | None,
) -> tuple[StepSubmission, TaskStep]:
    submission = await _get_submission(db, submission_id)
    if submission is None:
        raise SubmissionNotFound()
    step = await db.get(TaskStep, submission.step_id)
    if step is None:
        raise StepNotFound()
    task = await db.get(Task, step.task_id)
    if task is None:
        raise TaskNotFound()

    authorize(reviewer, Action.REVIEW_SUBMISSION, task)
    validate_transition(submission.status, target)

    await ledger.lock_user(db, submission.user_id)
    result = await db.execute(
        update(StepSubmission)
        .where(
            StepSubmission.submission_id == submission_id,
            StepSubmission.status == SubmissionStatus.PENDING.value,
        )
        .values(
            status=target.value,
            reviewed_by=reviewer.user_id,
            reviewed_at=utcnow(),
            feedback=feedback,
        )
    )
    if result.rowcount == 0:
        if await _get_submission(db, submission_id) is None:
            # removed by a leave or cascade that held the lock first
            raise SubmissionNotFound()
        raise InvalidState("This submission has already been reviewed.")

    return await _get_submission(db, submission_id), step


async def approve_submission(
    db: AsyncSession,
    submission_id: int,
    reviewer: Principal,
    feedback: str | None = None,
) -> StepSubmission:
    """Approve a pending submission and credit the step's reward to the submitter."""
    submission, step = await _review(db, submission_id, reviewer, SubmissionStatus.APPROVED, feedback)
    await ledger.credit(db, submission.user_id, step.step_id, step.points_reward)
    logger.info(
        "submission_approved",
        submission_id=submission_id,
        reviewer=reviewer.user_id,
        user_id=submission.user_id,
        points=step.points_reward,
    )
    return submission


async def reject_submission(
    db: AsyncSession,
    submission_id: int,
    reviewer: Principal,
    feedback: str | None = None,
) -> StepSubmission:
    submission, _ = await _review(db, submission_id, reviewer, SubmissionStatus.REJECTED, feedback)
    logger.info("submission_rejected", submission_id=submission_id, reviewer=reviewer.user_id)
    return submission


async def get_pending_submissions(db: AsyncSession, principal: Principal) -> list[PendingSubmissionResponse]:
    """PENDING submissions, oldest first. Managers only see tasks assigned to them."""
    authorize(principal, Action.VIEW_PENDING)

    query = (
        select(StepSubmission, TaskStep, Task, User)
        .join(TaskStep, TaskStep.step_id == StepSubmission.step_id)
        .join(Task, Task.task_id == TaskStep.task_id)
        .join(User, User.user_id == StepSubmission.user_id)
        .where(StepSubmission.status == SubmissionStatus.PENDING.value)
        .order_by(StepSubmission.submitted_at, StepSubmission.submission_id)
    )
    if not principal.is_admin:
        query = query.where(Task.assigned_manager_id == principal.user_id)

    result = await db.execute(query)
    return [
        PendingSubmissionResponse(
            submission_id=row.StepSubmission.submission_id,
            status=row.StepSubmission.status,
            submitted_at=row.StepSubmission.submitted_at,
            user_id=row.User.user_id,
            user_name=row.User.name,
            user_email=row.User.email,
            avatar_url=row.User.avatar_url,
            step_id=row.TaskStep.step_id,
            step_title=row.TaskStep.title,
            points_reward=row.TaskStep.points_reward,
            task_id=row.Task.task_id,
            task_title=row.Task.title,
        )
        for row in result
    ]
