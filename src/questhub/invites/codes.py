"""Invite code generation.

Codes are drawn from A-Z, a-z and 0-9 with a cryptographic random source.
At the default 24 characters that is roughly 143 bits, far beyond guessing.
"""

from __future__ import annotations

import secrets
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.db.models import Invite

INVITE_CHARSET = string.ascii_letters + string.digits
INVITE_LENGTH = 24


def generate_invite_code(length: int = INVITE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CHARSET) for _ in range(length))


def looks_like_invite_code(code: str) -> bool:
    """Cheap shape check before touching the database."""
    return 8 <= len(code) <= 64 and all(c in INVITE_CHARSET for c in code)


async def generate_unique_invite_code(db: AsyncSession, length: int = INVITE_LENGTH) -> str:
    """Generate a code that doesn't already exist in the database."""
    for _ in range(10):
        code = generate_invite_code(length)
        existing = await db.execute(select(Invite.code).where(Invite.code == code))
        if existing.scalar_one_or_none() is None:
            return code
    raise RuntimeError("Failed to generate unique invite code after 10 attempts")
