"""Pydantic schemas for company endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CreateCompanyRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str | None = Field(None, max_length=2000)


class UpdateCompanyRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=128)
    description: str | None = Field(None, max_length=2000)


class AssignUserRequest(BaseModel):
    user_id: str


class BulkAssignRequest(BaseModel):
    user_ids: list[str] = Field(..., min_length=1, max_length=500)


class CompanyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_id: int
    name: str
    description: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None


class CompanyListResponse(BaseModel):
    companies: list[CompanyResponse]


class UserCompanyResponse(BaseModel):
    company: CompanyResponse
    assigned_at: datetime


class CompanyMemberResponse(BaseModel):
    user_id: str
    name: str | None = None
    email: str | None = None
    role: str
    avatar_url: str | None = None
    assigned_at: datetime


class CompanyMemberListResponse(BaseModel):
    company_id: int
    members: list[CompanyMemberResponse]


class RankInfo(BaseModel):
    name: str
    range: str


class LeaderboardEntry(BaseModel):
    position: int
    user_id: str
    name: str | None = None
    avatar_url: str | None = None
    total_points: int
    rank: RankInfo


class LeaderboardResponse(BaseModel):
    company_id: int
    entries: list[LeaderboardEntry]
