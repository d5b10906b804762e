"""Admin-issued single-use invite codes and invite-based sign-up."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.clock import utcnow
from questhub.config import get_settings
from questhub.db.models import Invite, User
from questhub.errors import InviteAlreadyUsed, InviteNotFound, PermissionDenied
from questhub.invites.codes import generate_unique_invite_code, looks_like_invite_code

logger = logging.getLogger(__name__)


async def create_invite(db: AsyncSession, admin_id: str) -> Invite:
    code = await generate_unique_invite_code(db, get_settings().invite_code_length)
    invite = Invite(code=code, is_used=False, created_by=admin_id, created_at=utcnow())
    db.add(invite)
    await db.flush()
    logger.info("Invite created by %s", admin_id)
    return invite


async def list_invites(db: AsyncSession) -> list[Invite]:
    result = await db.execute(select(Invite).order_by(Invite.created_at.desc()))
    return list(result.scalars().all())


async def validate_invite(db: AsyncSession, code: str) -> tuple[bool, str]:
    """Return ``(valid, message)`` for a code without consuming it."""
    if not looks_like_invite_code(code):
        return False, InviteNotFound.default_message
    invite = await db.get(Invite, code)
    if invite is None:
        return False, InviteNotFound.default_message
    if invite.is_used:
        return False, InviteAlreadyUsed.default_message
    return True, "Invite code is valid."


async def complete_signup_with_invite(
    db: AsyncSession,
    claims: dict[str, Any],
    code: str,
    profile: dict[str, Any],
) -> User:
    """Consume ``code`` and create the caller's profile in one transaction.

    The invite is consumed with ``UPDATE ... WHERE is_used = false``; of two
    sign-ups racing for the same code exactly one updates a row. New users
    always start with the ``user`` role and no points; an existing profile
    keeps its role.
    """
    user_id = claims["sub"]
    if profile.get("user_id") and profile["user_id"] != user_id:
        raise PermissionDenied("User ID mismatch.")

    user = await db.get(User, user_id)
    if user is None:
        user = User(
            user_id=user_id,
            email=profile.get("email") or claims.get("email"),
            name=profile.get("name"),
            avatar_url=profile.get("avatar_url"),
            role="user",
            total_points=0,
        )
        db.add(user)
    else:
        for field in ("email", "name", "avatar_url"):
            if profile.get(field):
                setattr(user, field, profile[field])
    await db.flush()

    result = await db.execute(
        update(Invite)
        .where(Invite.code == code, Invite.is_used.is_(False))
        .values(is_used=True, used_by=user_id, used_at=utcnow())
    )
    if result.rowcount == 0:
        if await db.get(Invite, code) is None:
            raise InviteNotFound()
        raise InviteAlreadyUsed()

    logger.info("Invite consumed by %s", user_id)
    return user
