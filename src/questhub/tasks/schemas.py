"""Pydantic schemas for task endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# --- Requests ---


class StepInput(BaseModel):
    step_id: int | None = None
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    # Raw form value; normalized by coerce_points_reward
    points_reward: Any = 0


class CreateTaskRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    assigned_manager_id: str | None = None
    company_id: int | None = None
    deadline: datetime | None = None
    level: int = Field(1, ge=1, le=5)
    steps: list[StepInput] = []


class UpdateTaskRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    assigned_manager_id: str | None = None
    company_id: int | None = None
    deadline: datetime | None = None
    level: int | None = Field(None, ge=1, le=5)
    is_active: bool | None = None
    steps: list[StepInput] | None = None


# --- Responses ---


class StepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    step_id: int
    task_id: int
    title: str
    description: str | None = None
    points_reward: int
    created_at: datetime | None = None


class ManagerSummary(BaseModel):
    user_id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None


class TaskResponse(BaseModel):
    task_id: int
    title: str
    description: str | None = None
    created_by: str | None = None
    assigned_manager_id: str | None = None
    company_id: int | None = None
    deadline: datetime | None = None
    level: int
    is_active: bool
    created_at: datetime | None = None
    total_points: int = 0
    steps: list[StepResponse] = []
    manager: ManagerSummary | None = None


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    total: int


class StepProgress(BaseModel):
    step_id: int
    title: str
    description: str | None = None
    points_reward: int
    status: str
    submission_id: int | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    feedback: str | None = None


class TaskProgressResponse(BaseModel):
    task_id: int
    user_id: str
    enrolled: bool
    joined_at: datetime | None = None
    steps: list[StepProgress]
    completed_steps: int
    earned_points: int
    total_points: int


class ParticipantSubmission(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    submission_id: int
    step_id: int
    status: str
    submitted_at: datetime
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    feedback: str | None = None


class ParticipantResponse(BaseModel):
    user_id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    total_points: int
    joined_at: datetime
    submissions: list[ParticipantSubmission] = []


class ParticipantListResponse(BaseModel):
    task_id: int
    participants: list[ParticipantResponse]
