"""Health endpoints and middleware: request id, rate limiting, CORS, error shape."""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from questhub.invites import service as invites
from questhub.main import create_app
from questhub.middleware import rate_limit


class FakePipeline:
    """Just enough of a redis pipeline for INCR + EXPIRE."""

    def __init__(self, store: dict[str, int], fail: bool) -> None:
        self.store = store
        self.fail = fail
        self.ops: list[str] = []

    def incr(self, key: str) -> None:
        self.ops.append(key)

    def expire(self, key: str, seconds: int) -> None:
        pass

    async def execute(self) -> list[int]:
        if self.fail:
            raise RedisConnectionError("connection refused")
        results = []
        for key in self.ops:
            self.store[key] = self.store.get(key, 0) + 1
            results.extend([self.store[key], True])
        return results


class FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.store: dict[str, int] = {}
        self.fail = fail

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self.store, self.fail)


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_ready_reports_redis_and_ledger(client: AsyncClient) -> None:
    """Without Redis the service is degraded; the ledger check still runs."""
    response = await client.get("/ready")
    data = response.json()
    assert data["checks"]["database"] == "ok"
    assert data["checks"]["redis"].startswith("error")
    assert data["status"] == "degraded"
    assert data["points_integrity"] == {"consistent": True, "difference": 0, "inconsistent_users": 0}


@pytest.mark.asyncio
async def test_version(client: AsyncClient) -> None:
    data = (await client.get("/version")).json()
    assert data["version"] == "0.1.0"
    assert data["environment"] == "development"


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 32


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_rate_limit_fails_open_without_redis(client: AsyncClient) -> None:
    for _ in range(120):
        response = await client.get("/api/v1/invites/AAAAAAAAAAAAAAAAAAAAAAAA/validate")
        assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_fails_open_on_redis_error(client: AsyncClient, monkeypatch) -> None:
    monkeypatch.setattr(rate_limit, "get_redis", lambda: FakeRedis(fail=True))
    response = await client.get("/api/v1/invites/AAAAAAAAAAAAAAAAAAAAAAAA/validate")
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient, monkeypatch) -> None:
    fake = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)
    path = "/api/v1/invites/AAAAAAAAAAAAAAAAAAAAAAAA/validate"

    for _ in range(100):
        response = await client.get(path)
    assert response.status_code == 200
    assert response.headers["x-ratelimit-remaining"] == "0"
    assert response.headers["x-ratelimit-limit"] == "100"

    response = await client.get(path)
    assert response.status_code == 429
    assert "retry-after" in response.headers
    assert response.json()["error"] == "rate_limited"


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient, monkeypatch) -> None:
    fake = FakeRedis()
    monkeypatch.setattr(rate_limit, "get_redis", lambda: fake)
    for _ in range(150):
        assert (await client.get("/health")).status_code == 200
    assert fake.store == {}


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    response = await client.options(
        "/api/v1/tasks",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_validation_error_shape(client: AsyncClient, people, auth_headers) -> None:
    response = await client.post("/api/v1/tasks", json={"steps": []}, headers=auth_headers("admin-1"))
    assert response.status_code == 422
    data = response.json()
    assert data["success"] is False
    assert data["error"] == "validation_error"
    assert data["errors"]


@pytest.mark.asyncio
async def test_unhandled_error_shape(database, monkeypatch) -> None:
    async def broken(db, code):
        raise AttributeError("'NoneType' object has no attribute 'is_used'")

    monkeypatch.setattr(invites, "validate_invite", broken)
    transport = ASGITransport(app=create_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/v1/invites/AAAAAAAAAAAAAAAAAAAAAAAA/validate")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "message": "Internal server error",
        "error": "internal_error",
        "data": None,
    }
