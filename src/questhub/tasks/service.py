"""Task and step management plus task read models."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.cascade import service as cascade
from questhub.db.models import Company, StepSubmission, Task, TaskEnrollment, TaskStep, User
from questhub.errors import CompanyNotFound, TaskNotFound, ValidationFailed
from questhub.points.coercion import coerce_points, is_clean_points
from questhub.submissions.state_machine import SubmissionStatus
from questhub.tasks.schemas import (
    ManagerSummary,
    ParticipantResponse,
    ParticipantSubmission,
    StepInput,
    StepProgress,
    StepResponse,
    TaskProgressResponse,
    TaskResponse,
)

logger = structlog.get_logger()

TASK_FIELDS = ("title", "description", "assigned_manager_id", "company_id", "deadline", "level", "is_active")
REQUIRED_FIELDS = ("title", "level", "is_active")


def coerce_points_reward(value: Any) -> int:
    """Normalize a step reward. Unusable input becomes 0 and is logged."""
    points = coerce_points(value)
    if not is_clean_points(value):
        logger.warning("points_reward_coerced", raw=repr(value), coerced=points)
    return points


async def _check_references(db: AsyncSession, fields: dict[str, Any]) -> None:
    manager_id = fields.get("assigned_manager_id")
    if manager_id:
        manager = await db.get(User, manager_id)
        if manager is None or manager.role not in ("manager", "admin"):
            raise ValidationFailed("Assigned manager must be an existing manager or admin.")

    company_id = fields.get("company_id")
    if company_id is not None and await db.get(Company, company_id) is None:
        raise CompanyNotFound()


async def _load_steps(db: AsyncSession, task_id: int) -> list[TaskStep]:
    result = await db.execute(
        select(TaskStep)
        .where(TaskStep.task_id == task_id)
        .order_by(TaskStep.created_at, TaskStep.step_id)
    )
    return list(result.scalars().all())


async def _get_task_row(db: AsyncSession, task_id: int) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise TaskNotFound()
    return task


def _add_step(db: AsyncSession, task_id: int, step: StepInput) -> TaskStep:
    row = TaskStep(
        task_id=task_id,
        title=step.title,
        description=step.description,
        points_reward=coerce_points_reward(step.points_reward),
    )
    db.add(row)
    return row


async def create_task(
    db: AsyncSession,
    creator_id: str,
    data: dict[str, Any],
    steps: list[StepInput],
) -> Task:
    """Create an active task with its steps in the order given."""
    await _check_references(db, data)

    task = Task(
        title=data["title"],
        description=data.get("description"),
        created_by=creator_id,
        assigned_manager_id=data.get("assigned_manager_id"),
        company_id=data.get("company_id"),
        deadline=data.get("deadline"),
        level=data.get("level") or 1,
        is_active=True,
    )
    db.add(task)
    await db.flush()

    # one flush per step keeps step_id order equal to input order
    for step in steps:
        _add_step(db, task.task_id, step)
        await db.flush()

    logger.info("task_created", task_id=task.task_id, steps=len(steps), creator=creator_id)
    return task


async def update_task(
    db: AsyncSession,
    task_id: int,
    data: dict[str, Any],
    steps: list[StepInput] | None = None,
) -> Task:
    """Update task fields and, when ``steps`` is given, sync the step list.

    Steps without an id are inserted, steps with an id are updated, and
    existing steps missing from the list are deleted through the cascade
    coordinator so their credited points are reversed first.
    """
    task = await _get_task_row(db, task_id)
    await _check_references(db, data)

    for name in TASK_FIELDS:
        if name in data and not (data[name] is None and name in REQUIRED_FIELDS):
            setattr(task, name, data[name])

    if steps is not None:
        existing = {s.step_id: s for s in await _load_steps(db, task_id)}
        incoming_ids = {s.step_id for s in steps if s.step_id is not None}

        foreign = incoming_ids - existing.keys()
        if foreign:
            raise ValidationFailed(f"Steps {sorted(foreign)} do not belong to this task.")

        for step_id in existing.keys() - incoming_ids:
            await cascade.delete_step(db, step_id, reason="step_removed")

        for step in steps:
            if step.step_id is None:
                _add_step(db, task_id, step)
            else:
                row = existing[step.step_id]
                row.title = step.title
                row.description = step.description
                row.points_reward = coerce_points_reward(step.points_reward)
            await db.flush()

    await db.flush()
    logger.info("task_updated", task_id=task_id, fields=sorted(k for k in data if k in TASK_FIELDS))
    return task


# --- Read models ---


async def _manager_summaries(db: AsyncSession, manager_ids: set[str]) -> dict[str, ManagerSummary]:
    if not manager_ids:
        return {}
    result = await db.execute(select(User).where(User.user_id.in_(manager_ids)))
    return {
        u.user_id: ManagerSummary(user_id=u.user_id, name=u.name, email=u.email, avatar_url=u.avatar_url)
        for u in result.scalars()
    }


async def _build_task_responses(db: AsyncSession, tasks: list[Task]) -> list[TaskResponse]:
    if not tasks:
        return []

    task_ids = [t.task_id for t in tasks]
    step_result = await db.execute(
        select(TaskStep)
        .where(TaskStep.task_id.in_(task_ids))
        .order_by(TaskStep.created_at, TaskStep.step_id)
    )
    steps_by_task: dict[int, list[TaskStep]] = {}
    for step in step_result.scalars():
        steps_by_task.setdefault(step.task_id, []).append(step)

    managers = await _manager_summaries(db, {t.assigned_manager_id for t in tasks if t.assigned_manager_id})

    responses = []
    for t in tasks:
        steps = steps_by_task.get(t.task_id, [])
        responses.append(TaskResponse(
            task_id=t.task_id,
            title=t.title,
            description=t.description,
            created_by=t.created_by,
            assigned_manager_id=t.assigned_manager_id,
            company_id=t.company_id,
            deadline=t.deadline,
            level=t.level,
            is_active=t.is_active,
            created_at=t.created_at,
            total_points=sum(s.points_reward for s in steps),
            steps=[StepResponse.model_validate(s) for s in steps],
            manager=managers.get(t.assigned_manager_id) if t.assigned_manager_id else None,
        ))
    return responses


async def get_task(db: AsyncSession, task_id: int) -> TaskResponse:
    """A task with its steps ordered by creation."""
    task = await _get_task_row(db, task_id)
    return (await _build_task_responses(db, [task]))[0]


async def list_tasks(
    db: AsyncSession,
    company_id: int | None = None,
    active_only: bool = False,
) -> list[TaskResponse]:
    """All tasks, newest first."""
    query = select(Task).order_by(Task.created_at.desc(), Task.task_id.desc())
    if company_id is not None:
        query = query.where(Task.company_id == company_id)
    if active_only:
        query = query.where(Task.is_active.is_(True))
    result = await db.execute(query)
    return await _build_task_responses(db, list(result.scalars().all()))


async def get_manager_tasks(db: AsyncSession, manager_id: str) -> list[TaskResponse]:
    result = await db.execute(
        select(Task)
        .where(Task.assigned_manager_id == manager_id)
        .order_by(Task.created_at.desc(), Task.task_id.desc())
    )
    return await _build_task_responses(db, list(result.scalars().all()))


async def get_task_progress(db: AsyncSession, task_id: int, user_id: str) -> TaskProgressResponse:
    """Per-step status of one user on one task. Steps without a submission are NOT_STARTED."""
    await _get_task_row(db, task_id)
    steps = await _load_steps(db, task_id)

    enrollment_result = await db.execute(
        select(TaskEnrollment).where(TaskEnrollment.task_id == task_id, TaskEnrollment.user_id == user_id)
    )
    enrollment = enrollment_result.scalar_one_or_none()

    submissions: dict[int, StepSubmission] = {}
    if steps:
        sub_result = await db.execute(
            select(StepSubmission).where(
                StepSubmission.user_id == user_id,
                StepSubmission.step_id.in_([s.step_id for s in steps]),
            )
        )
        submissions = {s.step_id: s for s in sub_result.scalars()}

    progress = []
    for step in steps:
        sub = submissions.get(step.step_id)
        progress.append(StepProgress(
            step_id=step.step_id,
            title=step.title,
            description=step.description,
            points_reward=step.points_reward,
            status=sub.status if sub else SubmissionStatus.NOT_STARTED.value,
            submission_id=sub.submission_id if sub else None,
            submitted_at=sub.submitted_at if sub else None,
            reviewed_at=sub.reviewed_at if sub else None,
            feedback=sub.feedback if sub else None,
        ))

    approved = [p for p in progress if p.status == SubmissionStatus.APPROVED.value]
    return TaskProgressResponse(
        task_id=task_id,
        user_id=user_id,
        enrolled=enrollment is not None,
        joined_at=enrollment.joined_at if enrollment else None,
        steps=progress,
        completed_steps=len(approved),
        earned_points=sum(p.points_reward for p in approved),
        total_points=sum(p.points_reward for p in progress),
    )


async def get_task_participants(db: AsyncSession, task_id: int) -> list[ParticipantResponse]:
    """Enrolled users with their submissions for this task's steps, earliest joiner first."""
    await _get_task_row(db, task_id)

    result = await db.execute(
        select(User, TaskEnrollment.joined_at)
        .join(TaskEnrollment, TaskEnrollment.user_id == User.user_id)
        .where(TaskEnrollment.task_id == task_id)
        .order_by(TaskEnrollment.joined_at, TaskEnrollment.id)
        .execution_options(populate_existing=True)
    )
    rows = result.all()
    if not rows:
        return []

    step_ids = select(TaskStep.step_id).where(TaskStep.task_id == task_id)
    sub_result = await db.execute(
        select(StepSubmission)
        .where(
            StepSubmission.step_id.in_(step_ids),
            StepSubmission.user_id.in_([row.User.user_id for row in rows]),
        )
        .order_by(StepSubmission.step_id)
    )
    by_user: dict[str, list[ParticipantSubmission]] = {}
    for sub in sub_result.scalars():
        by_user.setdefault(sub.user_id, []).append(ParticipantSubmission.model_validate(sub))

    return [
        ParticipantResponse(
            user_id=row.User.user_id,
            name=row.User.name,
            email=row.User.email,
            avatar_url=row.User.avatar_url,
            total_points=row.User.total_points,
            joined_at=row.joined_at,
            submissions=by_user.get(row.User.user_id, []),
        )
        for row in rows
    ]
