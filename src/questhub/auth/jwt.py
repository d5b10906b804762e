"""
Identity token verification.

Tokens are issued by the external identity provider. The only claim the core
trusts is ``sub``, which becomes the ``user_id``; roles always come from the
users table.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from questhub.config import get_settings


def create_identity_token(
    user_id: str,
    email: str | None = None,
    *,
    expires_in_minutes: int | None = None,
) -> str:
    """
    Mint an identity token signed with the configured secret.

    Used by local tooling and tests to stand in for the identity provider.

    Args:
        user_id: Subject of the token.
        email: Optional email claim.
        expires_in_minutes: Lifetime override; defaults to the configured expiry.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = settings.jwt_token_expire_minutes if expires_in_minutes is None else expires_in_minutes
    payload: dict[str, Any] = {
        "sub": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=lifetime),
        "iss": settings.jwt_issuer,
    }
    if email:
        payload["email"] = email
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_identity_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an identity token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            options={"verify_aud": settings.jwt_audience is not None},
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)

    return payload
