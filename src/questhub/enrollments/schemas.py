"""Pydantic schemas for enrollment endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class EnrollmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    user_id: str
    joined_at: datetime


class EnrollmentListResponse(BaseModel):
    enrollments: list[EnrollmentResponse]


class LeaveTaskResponse(BaseModel):
    task_id: int
    user_id: str
    points_removed: int
    submissions_deleted: int
    total_points: int
