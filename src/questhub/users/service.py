"""User profiles, roles and points history."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.auth.principal import Role
from questhub.db.models import Task, TaskEnrollment, TaskStep, User, UserPointHistory
from questhub.errors import UserNotFound, ValidationFailed
from questhub.points.ranks import compute_rank
from questhub.users.schemas import (
    PointHistoryEntry,
    PointHistoryResponse,
    RankResponse,
    TaskPointsBreakdown,
    UserResponse,
)

logger = structlog.get_logger()


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        email=user.email,
        name=user.name,
        avatar_url=user.avatar_url,
        role=user.role,
        total_points=user.total_points,
        rank=RankResponse(**compute_rank(user.total_points)),
        created_at=user.created_at,
    )


async def get_user(db: AsyncSession, user_id: str) -> User:
    result = await db.execute(
        select(User).where(User.user_id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise UserNotFound()
    return user


async def user_read_model(db: AsyncSession, user_id: str) -> UserResponse:
    return _user_response(await get_user(db, user_id))


async def sync_user(
    db: AsyncSession,
    claims: dict[str, Any],
    name: str | None = None,
    avatar_url: str | None = None,
) -> tuple[User, bool]:
    """Create the profile on first sign-in, refresh it afterwards.

    Returns ``(user, created)``. New users start as ``user`` with 0 points;
    the stored role is never taken from the token.
    """
    user_id = claims["sub"]
    user = await db.get(User, user_id)
    if user is None:
        user = User(
            user_id=user_id,
            email=claims.get("email"),
            name=name or claims.get("name"),
            avatar_url=avatar_url,
            role=Role.USER.value,
            total_points=0,
        )
        db.add(user)
        await db.flush()
        logger.info("user_created", user_id=user_id)
        return user, True

    if claims.get("email"):
        user.email = claims["email"]
    if name:
        user.name = name
    if avatar_url:
        user.avatar_url = avatar_url
    await db.flush()
    return user, False


async def list_users(db: AsyncSession, role: Role | None = None) -> list[UserResponse]:
    """All users, highest total first."""
    query = select(User).order_by(User.total_points.desc(), User.user_id)
    if role is not None:
        query = query.where(User.role == role.value)
    result = await db.execute(query.execution_options(populate_existing=True))
    return [_user_response(u) for u in result.scalars()]


async def change_role(db: AsyncSession, actor_id: str, user_id: str, role: Role) -> User:
    user = await get_user(db, user_id)
    if user_id == actor_id and role is not Role.ADMIN:
        raise ValidationFailed("Admins cannot remove their own admin role.")
    previous = user.role
    user.role = role.value
    await db.flush()
    logger.info("role_changed", user_id=user_id, previous=previous, role=role.value, actor=actor_id)
    return user


async def get_point_history(db: AsyncSession, user_id: str) -> PointHistoryResponse:
    """Ledger entries newest first, plus earned vs. available points per task."""
    user = await get_user(db, user_id)

    result = await db.execute(
        select(UserPointHistory, TaskStep.title.label("step_title"), Task.task_id, Task.title.label("task_title"))
        .outerjoin(TaskStep, TaskStep.step_id == UserPointHistory.step_id)
        .outerjoin(Task, Task.task_id == TaskStep.task_id)
        .where(UserPointHistory.user_id == user_id)
        .order_by(UserPointHistory.earned_at.desc(), UserPointHistory.history_id.desc())
    )
    entries = []
    earned_by_task: dict[int, int] = {}
    for row in result:
        h = row.UserPointHistory
        entries.append(PointHistoryEntry(
            history_id=h.history_id,
            points_earned=h.points_earned,
            reason=h.reason,
            earned_at=h.earned_at,
            step_id=h.step_id,
            step_title=row.step_title,
            task_id=row.task_id,
            task_title=row.task_title,
            created_by=h.created_by,
        ))
        if row.task_id is not None:
            earned_by_task[row.task_id] = earned_by_task.get(row.task_id, 0) + h.points_earned

    enrolled = await db.execute(select(TaskEnrollment.task_id).where(TaskEnrollment.user_id == user_id))
    task_ids = set(earned_by_task) | set(enrolled.scalars().all())

    breakdown = []
    if task_ids:
        totals = await db.execute(
            select(Task.task_id, Task.title, func.coalesce(func.sum(TaskStep.points_reward), 0).label("available"))
            .outerjoin(TaskStep, TaskStep.task_id == Task.task_id)
            .where(Task.task_id.in_(task_ids))
            .group_by(Task.task_id, Task.title)
            .order_by(Task.task_id)
        )
        breakdown = [
            TaskPointsBreakdown(
                task_id=row.task_id,
                task_title=row.title,
                earned_points=earned_by_task.get(row.task_id, 0),
                total_points=int(row.available),
            )
            for row in totals
        ]

    return PointHistoryResponse(
        user_id=user.user_id,
        total_points=user.total_points,
        rank=RankResponse(**compute_rank(user.total_points)),
        entries=entries,
        tasks=breakdown,
    )
