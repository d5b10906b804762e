"""Invite API endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal, get_identity_claims
from questhub.auth.principal import Action, Principal, authorize
from questhub.database import get_session
from questhub.invites import service
from questhub.invites.schemas import (
    CompleteSignupRequest,
    InviteListResponse,
    InviteResponse,
    InviteValidationResponse,
)
from questhub.users.service import user_read_model

router = APIRouter(prefix="/api/v1", tags=["Invites"])


@router.post("/invites")
async def create_invite(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Issue a new single-use invite code (admin)."""
    authorize(principal, Action.MANAGE_INVITES)

    async def op():
        invite = await service.create_invite(db, principal.user_id)
        return InviteResponse.model_validate(invite)

    result = await run_action(db, "create_invite", op, "Invite created.")
    return action_response(result, success_status=201)


@router.get("/invites", response_model=InviteListResponse)
async def list_invites(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.MANAGE_INVITES)
    invites = await service.list_invites(db)
    return InviteListResponse(invites=[InviteResponse.model_validate(i) for i in invites])


@router.get("/invites/{code}/validate", response_model=InviteValidationResponse)
async def validate_invite(code: str, db: AsyncSession = Depends(get_session)):
    """Public check used by the sign-up page before an account exists."""
    valid, message = await service.validate_invite(db, code)
    return InviteValidationResponse(valid=valid, message=message)


@router.post("/invites/complete-signup")
async def complete_signup(
    body: CompleteSignupRequest,
    claims: dict[str, Any] = Depends(get_identity_claims),
    db: AsyncSession = Depends(get_session),
):
    """Consume an invite and create the caller's profile."""

    async def op():
        user = await service.complete_signup_with_invite(
            db, claims, body.code, body.profile.model_dump(exclude_none=True)
        )
        return await user_read_model(db, user.user_id)

    result = await run_action(db, "complete_signup_with_invite", op, "Welcome aboard!")
    return action_response(result, success_status=201)
