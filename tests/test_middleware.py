"""Middleware tests: request ID, rate limiting, CORS, error bodies."""

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from signalmap.middleware import rate_limit


class _FakePipeline:
    def __init__(self, counts: dict[str, int], fail: bool = False) -> None:
        self.counts = counts
        self.fail = fail
        self.key = ""

    def incr(self, key: str) -> None:
        self.key = key

    def expire(self, key: str, seconds: int) -> None:
        pass

    async def execute(self) -> list:
        if self.fail:
            raise RedisConnectionError("redis down")
        self.counts[self.key] = self.counts.get(self.key, 0) + 1
        return [self.counts[self.key], True]


class _FakeRedis:
    def __init__(self, fail: bool = False) -> None:
        self.counts: dict[str, int] = {}
        self.fail = fail

    def pipeline(self) -> _FakePipeline:
        return _FakePipeline(self.counts, self.fail)


@pytest.mark.asyncio
async def test_request_id_generated(client: AsyncClient) -> None:
    """Request ID is auto-generated when not provided."""
    response = await client.get("/health")
    assert len(response.headers["x-request-id"]) == 36


@pytest.mark.asyncio
async def test_request_id_preserved(client: AsyncClient) -> None:
    """Custom request ID is echoed back in response."""
    response = await client.get("/health", headers={"X-Request-Id": "test-abc-123"})
    assert response.headers["x-request-id"] == "test-abc-123"


@pytest.mark.asyncio
async def test_no_rate_limit_without_redis(client: AsyncClient) -> None:
    response = await client.get("/version")
    assert response.status_code == 200
    assert "x-ratelimit-limit" not in response.headers


@pytest.mark.asyncio
async def test_rate_limit_blocks_excess(client: AsyncClient, monkeypatch) -> None:
    """101st request in a window returns 429 with Retry-After."""
    fake = _FakeRedis()
    monkeypatch.setattr(rate_limit, "get_optional_redis", lambda: fake)

    for _ in range(100):
        response = await client.get("/nonexistent-path")
        assert response.status_code == 404
    assert response.headers["x-ratelimit-remaining"] == "0"

    response = await client.get("/nonexistent-path")
    assert response.status_code == 429
    assert "retry-after" in response.headers


@pytest.mark.asyncio
async def test_health_exempt_from_rate_limit(client: AsyncClient, monkeypatch) -> None:
    fake = _FakeRedis()
    monkeypatch.setattr(rate_limit, "get_optional_redis", lambda: fake)
    for _ in range(150):
        response = await client.get("/health")
        assert response.status_code == 200
    assert fake.counts == {}


@pytest.mark.asyncio
async def test_rate_limit_fails_open(client: AsyncClient, monkeypatch) -> None:
    monkeypatch.setattr(rate_limit, "get_optional_redis", lambda: _FakeRedis(fail=True))
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient) -> None:
    """CORS preflight returns access-control-allow-origin for configured origin."""
    response = await client.options(
        "/health",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "GET",
        },
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_404_returns_json(client: AsyncClient) -> None:
    response = await client.get("/nonexistent-path")
    assert response.status_code == 404
    assert response.json()["detail"] == "Not Found"
