"""Task API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal
from questhub.auth.principal import Action, Principal, authorize
from questhub.cascade import service as cascade
from questhub.database import get_session
from questhub.db.models import Task
from questhub.errors import TaskNotFound
from questhub.tasks import service
from questhub.tasks.schemas import (
    CreateTaskRequest,
    ParticipantListResponse,
    TaskListResponse,
    TaskProgressResponse,
    TaskResponse,
    UpdateTaskRequest,
)

router = APIRouter(prefix="/api/v1", tags=["Tasks"])


# ── Admin: task management ──


@router.post("/tasks")
async def create_task(
    body: CreateTaskRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Create a task with its steps (admin)."""
    authorize(principal, Action.CREATE_TASK)

    async def op():
        task = await service.create_task(
            db, principal.user_id, body.model_dump(exclude={"steps"}), body.steps
        )
        return await service.get_task(db, task.task_id)

    result = await run_action(db, "create_task", op, "Task created successfully!")
    return action_response(result, success_status=201)


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: int,
    body: UpdateTaskRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Update task fields; when ``steps`` is sent, the task's step list is replaced by it."""
    authorize(principal, Action.UPDATE_TASK)

    async def op():
        await service.update_task(
            db, task_id, body.model_dump(exclude_unset=True, exclude={"steps"}), body.steps
        )
        return await service.get_task(db, task_id)

    result = await run_action(db, "update_task", op, "Task updated successfully!")
    return action_response(result)


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Delete a task and all of its dependents, reversing any points earned on it."""
    authorize(principal, Action.DELETE_TASK)

    async def op():
        report = await cascade.delete_task(db, task_id)
        return report.as_dict()

    result = await run_action(db, "delete_task", op, "Task deleted successfully!")
    return action_response(result)


# ── Reads ──


@router.get("/tasks", response_model=TaskListResponse)
async def list_tasks(
    company_id: int | None = Query(None),
    active_only: bool = Query(False),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.VIEW_TASK)
    tasks = await service.list_tasks(db, company_id=company_id, active_only=active_only)
    return TaskListResponse(tasks=tasks, total=len(tasks))


@router.get("/managers/me/tasks", response_model=TaskListResponse)
async def list_my_managed_tasks(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Tasks assigned to the calling manager."""
    authorize(principal, Action.VIEW_PENDING)
    tasks = await service.get_manager_tasks(db, principal.user_id)
    return TaskListResponse(tasks=tasks, total=len(tasks))


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.VIEW_TASK)
    return await service.get_task(db, task_id)


@router.get("/tasks/{task_id}/progress", response_model=TaskProgressResponse)
async def get_task_progress(
    task_id: int,
    user_id: str | None = Query(None, description="Defaults to the caller"),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Per-step progress of a user on a task."""
    target = user_id or principal.user_id
    if target != principal.user_id:
        task = await db.get(Task, task_id)
        if task is None:
            raise TaskNotFound()
        authorize(principal, Action.VIEW_PARTICIPANTS, task)
    return await service.get_task_progress(db, task_id, target)


@router.get("/tasks/{task_id}/participants", response_model=ParticipantListResponse)
async def get_task_participants(
    task_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Enrolled users with their submissions (admin or the task's manager)."""
    task = await db.get(Task, task_id)
    if task is None:
        raise TaskNotFound()
    authorize(principal, Action.VIEW_PARTICIPANTS, task)
    participants = await service.get_task_participants(db, task_id)
    return ParticipantListResponse(task_id=task_id, participants=participants)
