"""Pydantic schemas for invite endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class InviteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    is_used: bool
    used_by: str | None = None
    used_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime


class InviteListResponse(BaseModel):
    invites: list[InviteResponse]


class InviteValidationResponse(BaseModel):
    valid: bool
    message: str


class SignupProfile(BaseModel):
    user_id: str | None = None
    email: str | None = Field(None, max_length=320)
    name: str | None = Field(None, max_length=128)
    avatar_url: str | None = None


class CompleteSignupRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    profile: SignupProfile = SignupProfile()
