"""Company API endpoints. CRUD and membership changes are admin-only."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.actions import action_response, run_action
from questhub.auth.dependencies import get_current_principal
from questhub.auth.principal import Action, Principal, authorize
from questhub.companies import service
from questhub.companies.schemas import (
    AssignUserRequest,
    BulkAssignRequest,
    CompanyListResponse,
    CompanyMemberListResponse,
    CompanyMemberResponse,
    CompanyResponse,
    CreateCompanyRequest,
    LeaderboardResponse,
    UpdateCompanyRequest,
    UserCompanyResponse,
)
from questhub.database import get_session

router = APIRouter(prefix="/api/v1", tags=["Companies"])


# ── Admin ──


@router.post("/companies")
async def create_company(
    body: CreateCompanyRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.MANAGE_COMPANIES)

    async def op():
        company = await service.create_company(db, principal.user_id, body.name, body.description)
        return CompanyResponse.model_validate(company)

    result = await run_action(db, "create_company", op, "Company created.")
    return action_response(result, success_status=201)


@router.patch("/companies/{company_id}")
async def update_company(
    company_id: int,
    body: UpdateCompanyRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.MANAGE_COMPANIES)

    async def op():
        company = await service.update_company(db, company_id, body.model_dump(exclude_unset=True))
        return CompanyResponse.model_validate(company)

    result = await run_action(db, "update_company", op, "Company updated.")
    return action_response(result)


@router.delete("/companies/{company_id}")
async def delete_company(
    company_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.MANAGE_COMPANIES)

    async def op():
        return await service.delete_company(db, company_id)

    result = await run_action(db, "delete_company", op, "Company deleted.")
    return action_response(result)


@router.post("/companies/{company_id}/members")
async def assign_member(
    company_id: int,
    body: AssignUserRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.MANAGE_COMPANIES)

    async def op():
        membership = await service.assign_user(db, principal.user_id, body.user_id, company_id)
        return {"user_id": membership.user_id, "company_id": membership.company_id}

    result = await run_action(db, "assign_company_member", op, "User assigned to company.")
    return action_response(result, success_status=201)


@router.post("/companies/{company_id}/members/bulk")
async def bulk_assign_members(
    company_id: int,
    body: BulkAssignRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.MANAGE_COMPANIES)

    async def op():
        return await service.bulk_assign_users(db, principal.user_id, body.user_ids, company_id)

    result = await run_action(db, "bulk_assign_company_members", op, "Users assigned to company.")
    return action_response(result)


@router.delete("/companies/{company_id}/members/{user_id}")
async def remove_member(
    company_id: int,
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.MANAGE_COMPANIES)

    async def op():
        await service.remove_user(db, user_id, company_id)
        return {"user_id": user_id, "company_id": company_id}

    result = await run_action(db, "remove_company_member", op, "User removed from company.")
    return action_response(result)


# ── Reads ──


@router.get("/companies", response_model=CompanyListResponse)
async def list_companies(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    companies = await service.list_companies(db, principal)
    return CompanyListResponse(companies=[CompanyResponse.model_validate(c) for c in companies])


@router.get("/users/{user_id}/companies", response_model=list[UserCompanyResponse])
async def get_user_companies(
    user_id: str,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    authorize(principal, Action.VIEW_USER, user_id)
    pairs = await service.get_user_companies(db, user_id)
    return [
        UserCompanyResponse(company=CompanyResponse.model_validate(c), assigned_at=assigned_at)
        for c, assigned_at in pairs
    ]


@router.get("/companies/{company_id}/members", response_model=CompanyMemberListResponse)
async def get_company_members(
    company_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    pairs = await service.get_company_users(db, principal, company_id)
    return CompanyMemberListResponse(
        company_id=company_id,
        members=[
            CompanyMemberResponse(
                user_id=u.user_id,
                name=u.name,
                email=u.email,
                role=u.role,
                avatar_url=u.avatar_url,
                assigned_at=assigned_at,
            )
            for u, assigned_at in pairs
        ],
    )


@router.get("/companies/{company_id}/leaderboard", response_model=LeaderboardResponse)
async def get_company_leaderboard(
    company_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
):
    """Company members ranked by total points."""
    entries = await service.get_company_leaderboard(db, principal, company_id)
    return LeaderboardResponse(company_id=company_id, entries=entries)
