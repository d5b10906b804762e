"""Companies and company membership.

A company groups users for manager scoping and leaderboards. Membership is
many-to-many; bulk assignment is an idempotent upsert.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.auth.principal import Action, Principal, authorize
from questhub.db.models import Company, Task, User, UserCompany
from questhub.errors import AlreadyMember, CompanyNotFound, NotFound, UserNotFound
from questhub.points.ranks import compute_rank

logger = logging.getLogger(__name__)


async def get_company(db: AsyncSession, company_id: int) -> Company:
    company = await db.get(Company, company_id)
    if company is None:
        raise CompanyNotFound()
    return company


async def create_company(db: AsyncSession, admin_id: str, name: str, description: str | None = None) -> Company:
    company = Company(name=name, description=description, created_by=admin_id)
    db.add(company)
    await db.flush()
    logger.info("Company %d created by %s", company.company_id, admin_id)
    return company


async def update_company(db: AsyncSession, company_id: int, updates: dict[str, Any]) -> Company:
    company = await get_company(db, company_id)
    if updates.get("name"):
        company.name = updates["name"]
    if "description" in updates:
        company.description = updates["description"]
    await db.flush()
    return company


async def delete_company(db: AsyncSession, company_id: int) -> dict[str, int]:
    """Delete a company. Its tasks are detached, its memberships removed."""
    await get_company(db, company_id)

    detached = await db.execute(update(Task).where(Task.company_id == company_id).values(company_id=None))
    removed = await db.execute(delete(UserCompany).where(UserCompany.company_id == company_id))
    await db.execute(delete(Company).where(Company.company_id == company_id))

    logger.info(
        "Company %d deleted (%d tasks detached, %d memberships removed)",
        company_id, detached.rowcount, removed.rowcount,
    )
    return {"tasks_detached": detached.rowcount, "memberships_removed": removed.rowcount}


async def is_member(db: AsyncSession, user_id: str, company_id: int) -> bool:
    result = await db.execute(
        select(UserCompany.id).where(UserCompany.user_id == user_id, UserCompany.company_id == company_id)
    )
    return result.scalar_one_or_none() is not None


async def shares_company(db: AsyncSession, user_a: str, user_b: str) -> bool:
    """True when the two users belong to at least one common company."""
    a_companies = select(UserCompany.company_id).where(UserCompany.user_id == user_a)
    result = await db.execute(
        select(UserCompany.id)
        .where(UserCompany.user_id == user_b, UserCompany.company_id.in_(a_companies))
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def list_companies(db: AsyncSession, principal: Principal) -> list[Company]:
    """Admins see every company; everyone else sees the companies they belong to."""
    query = select(Company).order_by(Company.name)
    if not principal.is_admin:
        member_of = select(UserCompany.company_id).where(UserCompany.user_id == principal.user_id)
        query = query.where(Company.company_id.in_(member_of))
    result = await db.execute(query)
    return list(result.scalars().all())


async def assign_user(db: AsyncSession, admin_id: str, user_id: str, company_id: int) -> UserCompany:
    await get_company(db, company_id)
    if await db.get(User, user_id) is None:
        raise UserNotFound()
    if await is_member(db, user_id, company_id):
        raise AlreadyMember()

    membership = UserCompany(user_id=user_id, company_id=company_id, assigned_by=admin_id)
    db.add(membership)
    try:
        await db.flush()
    except IntegrityError as e:
        raise AlreadyMember() from e
    return membership


async def bulk_assign_users(
    db: AsyncSession,
    admin_id: str,
    user_ids: list[str],
    company_id: int,
) -> dict[str, list[str]]:
    """Assign many users at once. Existing members are left as they are."""
    await get_company(db, company_id)

    wanted = list(dict.fromkeys(user_ids))
    known = await db.execute(select(User.user_id).where(User.user_id.in_(wanted)))
    known_ids = set(known.scalars().all())
    missing = [uid for uid in wanted if uid not in known_ids]
    if missing:
        raise UserNotFound(f"Unknown users: {', '.join(missing)}")

    existing = await db.execute(
        select(UserCompany.user_id).where(
            UserCompany.company_id == company_id,
            UserCompany.user_id.in_(wanted),
        )
    )
    already = set(existing.scalars().all())

    added = [uid for uid in wanted if uid not in already]
    for uid in added:
        db.add(UserCompany(user_id=uid, company_id=company_id, assigned_by=admin_id))
    await db.flush()

    logger.info("Bulk-assigned %d users to company %d (%d already members)", len(added), company_id, len(already))
    return {"added": added, "already_members": sorted(already)}


async def remove_user(db: AsyncSession, user_id: str, company_id: int) -> None:
    result = await db.execute(
        delete(UserCompany).where(UserCompany.user_id == user_id, UserCompany.company_id == company_id)
    )
    if result.rowcount == 0:
        raise NotFound("User is not a member of this company.")


async def get_user_companies(db: AsyncSession, user_id: str) -> list[tuple[Company, Any]]:
    """(company, assigned_at) pairs, most recent assignment first."""
    result = await db.execute(
        select(Company, UserCompany.assigned_at)
        .join(UserCompany, UserCompany.company_id == Company.company_id)
        .where(UserCompany.user_id == user_id)
        .order_by(UserCompany.assigned_at.desc())
    )
    return [(row.Company, row.assigned_at) for row in result]


async def get_company_users(db: AsyncSession, principal: Principal, company_id: int) -> list[tuple[User, Any]]:
    """(user, assigned_at) pairs. Admins or members of the company only."""
    await get_company(db, company_id)
    authorize(principal, Action.VIEW_COMPANY, principal.is_admin or await is_member(db, principal.user_id, company_id))

    result = await db.execute(
        select(User, UserCompany.assigned_at)
        .join(UserCompany, UserCompany.user_id == User.user_id)
        .where(UserCompany.company_id == company_id)
        .order_by(UserCompany.assigned_at.desc())
    )
    return [(row.User, row.assigned_at) for row in result]


async def get_company_leaderboard(db: AsyncSession, principal: Principal, company_id: int) -> list[dict[str, Any]]:
    """Members ordered by total points, highest first, with their rank tier."""
    await get_company(db, company_id)
    authorize(principal, Action.VIEW_COMPANY, principal.is_admin or await is_member(db, principal.user_id, company_id))

    result = await db.execute(
        select(User)
        .join(UserCompany, UserCompany.user_id == User.user_id)
        .where(UserCompany.company_id == company_id)
        .order_by(User.total_points.desc(), User.name)
        .execution_options(populate_existing=True)
    )
    return [
        {
            "position": position,
            "user_id": user.user_id,
            "name": user.name,
            "avatar_url": user.avatar_url,
            "total_points": user.total_points,
            "rank": compute_rank(user.total_points),
        }
        for position, user in enumerate(result.scalars(), start=1)
    ]
