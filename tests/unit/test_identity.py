"""Unit tests for identity tokens and the identity provider admin client."""

from __future__ import annotations

import httpx
import jwt
import pytest

from questhub.auth import identity_provider
from questhub.auth.identity_provider import (
    HttpIdentityProvider,
    NullIdentityProvider,
    get_identity_provider,
    reset_identity_provider,
)
from questhub.auth.jwt import create_identity_token, verify_identity_token
from questhub.config import get_settings
from questhub.errors import ExternalServiceError


class TestIdentityTokens:
    """Token round trip and rejection."""

    def test_round_trip(self):
        claims = verify_identity_token(create_identity_token("alice", "alice@example.com"))
        assert claims["sub"] == "alice"
        assert claims["email"] == "alice@example.com"

    def test_expired_token(self):
        token = create_identity_token("alice", expires_in_minutes=-1)
        with pytest.raises(jwt.InvalidTokenError, match="expired"):
            verify_identity_token(token)

    def test_wrong_secret(self):
        token = jwt.encode({"sub": "alice", "iss": get_settings().jwt_issuer}, "not-the-secret", algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            verify_identity_token(token)

    def test_missing_subject(self):
        settings = get_settings()
        token = jwt.encode({"iss": settings.jwt_issuer}, settings.jwt_secret, algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError, match="subject"):
            verify_identity_token(token)


def _patch_transport(monkeypatch: pytest.MonkeyPatch, handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []
    real_client = httpx.AsyncClient

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(recording), **kwargs)

    monkeypatch.setattr(identity_provider.httpx, "AsyncClient", factory)
    return seen


class TestIdentityProvider:
    """Provider selection and the HTTP admin client."""

    def test_default_is_null_provider(self):
        reset_identity_provider()
        assert isinstance(get_identity_provider(), NullIdentityProvider)

    def test_http_provider_selected(self, monkeypatch):
        monkeypatch.setenv("QH_IDENTITY_PROVIDER", "http")
        monkeypatch.setenv("QH_IDENTITY_ADMIN_URL", "https://id.example.com/admin/")
        get_settings.cache_clear()
        reset_identity_provider()
        provider = get_identity_provider()
        assert isinstance(provider, HttpIdentityProvider)
        assert provider.base_url == "https://id.example.com/admin"

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setenv("QH_IDENTITY_PROVIDER", "carrier-pigeon")
        get_settings.cache_clear()
        reset_identity_provider()
        with pytest.raises(ValueError, match="Unsupported identity provider"):
            get_identity_provider()

    @pytest.mark.asyncio
    async def test_delete_sends_bearer_request(self, monkeypatch):
        seen = _patch_transport(monkeypatch, lambda request: httpx.Response(204))
        await HttpIdentityProvider("https://id.example.com", "admin-token").delete_user("alice")
        assert seen[0].method == "DELETE"
        assert str(seen[0].url) == "https://id.example.com/users/alice"
        assert seen[0].headers["Authorization"] == "Bearer admin-token"

    @pytest.mark.asyncio
    async def test_unknown_user_counts_as_deleted(self, monkeypatch):
        _patch_transport(monkeypatch, lambda request: httpx.Response(404))
        await HttpIdentityProvider("https://id.example.com", "t").delete_user("ghost")

    @pytest.mark.asyncio
    async def test_provider_error_raises(self, monkeypatch):
        _patch_transport(monkeypatch, lambda request: httpx.Response(500))
        with pytest.raises(ExternalServiceError):
            await HttpIdentityProvider("https://id.example.com", "t").delete_user("alice")

    @pytest.mark.asyncio
    async def test_unreachable_provider_raises(self, monkeypatch):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        _patch_transport(monkeypatch, refuse)
        with pytest.raises(ExternalServiceError):
            await HttpIdentityProvider("https://id.example.com", "t").delete_user("alice")
