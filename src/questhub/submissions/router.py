"""Submission API endpoints: submit, review and the pending queue."""

from __future__ import annotations

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal
from questhub.auth.principal import Action, Principal, authorize
from questhub.database import get_session
from questhub.submissions import service
from questhub.submissions.schemas import PendingSubmissionListResponse, ReviewRequest

router = APIRouter(prefix="/api/v1", tags=["Submissions"])


@router.post("/steps/{step_id}/submit")
async def submit_step(
    step_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Submit a step of a joined task for review."""
    authorize(principal, Action.SUBMIT_STEP)

    async def op():
        submission = await service.submit_step(db, step_id, principal.user_id)
        return await service.submission_read_model(db, submission.submission_id)

    result = await run_action(db, "submit_step", op, "Step submitted for review.")
    return action_response(result)


@router.post("/submissions/{submission_id}/approve")
async def approve_submission(
    submission_id: int,
    body: ReviewRequest | None = Body(None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    feedback = body.feedback if body else None

    async def op():
        await service.approve_submission(db, submission_id, principal, feedback)
        return await service.submission_read_model(db, submission_id)

    result = await run_action(db, "approve_submission", op, "Submission approved.")
    return action_response(result)


@router.post("/submissions/{submission_id}/reject")
async def reject_submission(
    submission_id: int,
    body: ReviewRequest | None = Body(None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    feedback = body.feedback if body else None

    async def op():
        await service.reject_submission(db, submission_id, principal, feedback)
        return await service.submission_read_model(db, submission_id)

    result = await run_action(db, "reject_submission", op, "Submission rejected.")
    return action_response(result)


@router.get("/submissions/pending", response_model=PendingSubmissionListResponse)
async def list_pending_submissions(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Submissions waiting for review, oldest first."""
    submissions = await service.get_pending_submissions(db, principal)
    return PendingSubmissionListResponse(submissions=submissions, total=len(submissions))
