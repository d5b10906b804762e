"""FastAPI authentication dependencies."""

from __future__ import annotations

from typing import Any

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from questhub.auth.jwt import verify_identity_token
from questhub.auth.principal import Principal, Role
from questhub.database import get_session
from questhub.db.models import User

_bearer = HTTPBearer()


async def get_identity_claims(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> dict[str, Any]:
    """Verify the bearer token and return its claims. No user row required."""
    try:
        return verify_identity_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e


async def get_current_principal(
    claims: dict[str, Any] = Depends(get_identity_claims),
    db: AsyncSession = Depends(get_session),
) -> Principal:
    """
    Resolve the caller to a Principal.

    The role is read from the users table on every request, never from the token.
    """
    user = await db.get(User, claims["sub"])
    if user is None:
        raise HTTPException(status_code=401, detail="User not found. Complete sign-up first.")
    return Principal(user_id=user.user_id, role=Role(user.role))
