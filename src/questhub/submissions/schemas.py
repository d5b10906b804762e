"""Pydantic schemas for submission endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ReviewRequest(BaseModel):
    feedback: str | None = Field(None, max_length=2000)


class SubmissionResponse(BaseModel):
    submission_id: int
    step_id: int
    user_id: str
    status: str
    submitted_at: datetime
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    feedback: str | None = None
    # Submitter's total after the write
    total_points: int


class PendingSubmissionResponse(BaseModel):
    submission_id: int
    status: str
    submitted_at: datetime
    user_id: str
    user_name: str | None = None
    user_email: str | None = None
    avatar_url: str | None = None
    step_id: int
    step_title: str
    points_reward: int
    task_id: int
    task_title: str


class PendingSubmissionListResponse(BaseModel):
    submissions: list[PendingSubmissionResponse]
    total: int
