"""Pydantic schemas for user endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from questhub.auth.principal import Role


class SyncUserRequest(BaseModel):
    name: str | None = Field(None, max_length=128)
    avatar_url: str | None = None


class ChangeRoleRequest(BaseModel):
    role: Role


class RankResponse(BaseModel):
    name: str
    range: str


class UserResponse(BaseModel):
    user_id: str
    email: str | None = None
    name: str | None = None
    avatar_url: str | None = None
    role: str
    total_points: int
    rank: RankResponse
    created_at: datetime | None = None


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int


class PointHistoryEntry(BaseModel):
    history_id: int
    points_earned: int
    reason: str | None = None
    earned_at: datetime
    step_id: int | None = None
    step_title: str | None = None
    task_id: int | None = None
    task_title: str | None = None
    created_by: str | None = None


class TaskPointsBreakdown(BaseModel):
    task_id: int
    task_title: str
    earned_points: int
    total_points: int


class PointHistoryResponse(BaseModel):
    user_id: str
    total_points: int
    rank: RankResponse
    entries: list[PointHistoryEntry]
    tasks: list[TaskPointsBreakdown]
