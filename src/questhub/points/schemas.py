"""Pydantic schemas for points endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

from questhub.points.ledger import AdjustOperation


class AdjustPointsRequest(BaseModel):
    operation: AdjustOperation
    # Raw value; normalized the same way as step rewards. Ignored for reset.
    amount: Any = None


class AdjustPointsResponse(BaseModel):
    user_id: str
    previous_points: int
    total_points: int
    delta: int


class ReconciliationResponse(BaseModel):
    user_id: str
    total_points: int
    ledger_sum: int
    drift: int
    consistent: bool


class IntegrityReportResponse(BaseModel):
    consistent: bool
    total_points_sum: int
    ledger_sum: int
    difference: int
    inconsistent_users: list[ReconciliationResponse]
