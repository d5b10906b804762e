"""Enrollment API endpoints. Callers always act on their own enrollment."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal
from questhub.auth.principal import Action, Principal, authorize
from questhub.database import get_session
from questhub.db.models import User
from questhub.enrollments import service
from questhub.enrollments.schemas import EnrollmentListResponse, EnrollmentResponse, LeaveTaskResponse

router = APIRouter(prefix="/api/v1", tags=["Enrollments"])


@router.post("/tasks/{task_id}/join")
async def join_task(
    task_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.JOIN_TASK)

    async def op():
        enrollment = await service.join_task(db, task_id, principal.user_id)
        return EnrollmentResponse.model_validate(enrollment)

    result = await run_action(db, "join_task", op, "Successfully joined the task!")
    return action_response(result, success_status=201)


@router.post("/tasks/{task_id}/leave")
async def leave_task(
    task_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Leave a task. Points earned on it are removed and progress is reset."""
    authorize(principal, Action.LEAVE_TASK)

    async def op():
        outcome = await service.leave_task(db, task_id, principal.user_id)
        total = await db.execute(select(User.total_points).where(User.user_id == principal.user_id))
        return LeaveTaskResponse(**outcome, total_points=total.scalar_one())

    result = await run_action(db, "leave_task", op, "You have left the task.")
    return action_response(result)


@router.get("/users/me/enrollments", response_model=EnrollmentListResponse)
async def list_my_enrollments(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    enrollments = await service.list_user_enrollments(db, principal.user_id)
    return EnrollmentListResponse(
        enrollments=[EnrollmentResponse.model_validate(e) for e in enrollments],
    )
