"""Points API endpoints: manual adjustments and ledger integrity checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal
from questhub.auth.principal import Action, Principal, Role, authorize
from questhub.companies.service import shares_company
from questhub.database import get_session
from questhub.points import ledger
from questhub.points.schemas import (
    AdjustPointsRequest,
    AdjustPointsResponse,
    IntegrityReportResponse,
    ReconciliationResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Points"])


@router.post("/users/{user_id}/points/adjust")
async def adjust_points(
    user_id: str,
    body: AdjustPointsRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Increase, decrease, set or reset a user's points. Managers: users in their companies only."""
    same_company = principal.role is Role.MANAGER and await shares_company(db, principal.user_id, user_id)
    authorize(principal, Action.ADJUST_POINTS, same_company)

    async def op():
        outcome = await ledger.adjust_points(db, user_id, body.operation, body.amount, principal.user_id)
        return AdjustPointsResponse(**outcome)

    result = await run_action(db, "adjust_points", op, "Points updated.")
    return action_response(result)


@router.get("/users/{user_id}/points/reconcile", response_model=ReconciliationResponse)
async def reconcile_user(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Compare a user's cached total with the sum of their ledger (admin)."""
    authorize(principal, Action.VIEW_INTEGRITY)
    reconciliation = await ledger.reconcile(db, user_id)
    return ReconciliationResponse(**reconciliation.as_dict())


@router.get("/points/integrity", response_model=IntegrityReportResponse)
async def points_integrity(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Global check that every user's total equals their ledger sum (admin)."""
    authorize(principal, Action.VIEW_INTEGRITY)
    report = await ledger.integrity_report(db)
    return IntegrityReportResponse(**report.as_dict())
