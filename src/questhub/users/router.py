"""User API endpoints: profile sync, admin user management and points history."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal, get_identity_claims
from questhub.auth.identity_provider import BaseIdentityProvider, get_identity_provider
from questhub.auth.principal import Action, Principal, Role, authorize
from questhub.cascade import service as cascade
from questhub.database import get_session
from questhub.users import service
from questhub.users.schemas import (
    ChangeRoleRequest,
    PointHistoryResponse,
    SyncUserRequest,
    UserListResponse,
    UserResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Users"])


@router.post("/auth/sync")
async def sync_user(
    body: SyncUserRequest | None = None,
    claims: dict[str, Any] = Depends(get_identity_claims),
    db: AsyncSession = Depends(get_session),
):
    """Create or refresh the caller's profile after signing in with the identity provider."""
    body = body or SyncUserRequest()

    async def op():
        user, _created = await service.sync_user(db, claims, body.name, body.avatar_url)
        return await service.user_read_model(db, user.user_id)

    result = await run_action(db, "sync_user", op, "Profile synced.")
    return action_response(result)


@router.get("/users/me", response_model=UserResponse)
async def get_me(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    return await service.user_read_model(db, principal.user_id)


@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Role | None = Query(None),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """All users (admin)."""
    authorize(principal, Action.VIEW_USER)
    users = await service.list_users(db, role)
    return UserListResponse(users=users, total=len(users))


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.VIEW_USER, user_id)
    return await service.user_read_model(db, user_id)


@router.get("/users/{user_id}/points/history", response_model=PointHistoryResponse)
async def get_point_history(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.VIEW_USER, user_id)
    return await service.get_point_history(db, user_id)


@router.put("/users/{user_id}/role")
async def change_role(
    user_id: str,
    body: ChangeRoleRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.CHANGE_ROLE)

    async def op():
        await service.change_role(db, principal.user_id, user_id, body.role)
        return await service.user_read_model(db, user_id)

    result = await run_action(db, "change_role", op, "Role updated.")
    return action_response(result)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    identity: BaseIdentityProvider = Depends(get_identity_provider),
    db: AsyncSession = Depends(get_session),
):
    """Delete a user everywhere: identity provider first, then every local row."""
    authorize(principal, Action.DELETE_USER)

    async def op():
        return await cascade.delete_user(db, identity, user_id)

    result = await run_action(db, "delete_user", op, "User deleted successfully.")
    return action_response(result)
