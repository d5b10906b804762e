"""
Identity provider admin client with provider abstraction.

The core only needs one admin operation: deleting an account when a user is
removed. Provider is selected via configuration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
import structlog

from questhub.config import get_settings
from questhub.errors import ExternalServiceError

logger = structlog.get_logger()


class BaseIdentityProvider(ABC):
    """Abstract base class for identity provider admin APIs."""

    @abstractmethod
    async def delete_user(self, user_id: str) -> None:
        """Delete the external identity. An unknown user counts as deleted."""
        ...


class NullIdentityProvider(BaseIdentityProvider):
    """No external identity store (local development)."""

    async def delete_user(self, user_id: str) -> None:
        logger.info("identity_delete_skipped", user_id=user_id, provider="none")


class HttpIdentityProvider(BaseIdentityProvider):
    """Call the identity provider's admin HTTP API."""

    def __init__(self, base_url: str, token: str, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    async def delete_user(self, user_id: str) -> None:
        """DELETE {base_url}/users/{user_id}; 404 is treated as already deleted."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.delete(
                    f"{self.base_url}/users/{user_id}",
                    headers={"Authorization": f"Bearer {self.token}"},
                )
        except httpx.HTTPError as e:
            logger.warning("identity_delete_failed", user_id=user_id, error=str(e))
            raise ExternalServiceError("Could not reach the identity provider.") from e

        if response.status_code == 404:
            logger.info("identity_already_deleted", user_id=user_id)
            return
        if response.status_code >= 400:
            logger.warning("identity_delete_failed", user_id=user_id, status=response.status_code)
            raise ExternalServiceError("The identity provider refused to delete the account.")
        logger.info("identity_deleted", user_id=user_id, provider="http")


def _create_provider() -> BaseIdentityProvider:
    """Create the identity provider client based on configuration."""
    settings = get_settings()
    provider_name = settings.identity_provider.lower()

    if provider_name == "none":
        return NullIdentityProvider()
    if provider_name == "http":
        return HttpIdentityProvider(
            base_url=settings.identity_admin_url,
            token=settings.identity_admin_token,
            timeout=settings.external_timeout_seconds,
        )
    msg = f"Unsupported identity provider: {provider_name}"
    raise ValueError(msg)


_identity_provider: BaseIdentityProvider | None = None


def get_identity_provider() -> BaseIdentityProvider:
    """Get or create the identity provider singleton (FastAPI dependency)."""
    global _identity_provider  # noqa: PLW0603
    if _identity_provider is None:
        _identity_provider = _create_provider()
    return _identity_provider


def reset_identity_provider() -> None:
    """Reset the identity provider singleton (for testing)."""
    global _identity_provider  # noqa: PLW0603
    _identity_provider = None
