"""
Tests for the /api prefix and the rate limiter.

These tests verify:
  - Ledger and auth routes live under /api; the bare paths are gone
  - Past the per-client limit, /api requests get a 429 envelope with Retry-After
  - /health is never counted
  - Clients are counted separately, and a new window starts fresh
"""

from tavern_ledger.main import rate_limiter
from tavern_ledger.rate_limit import FixedWindowRateLimiter


class TestApiPrefix:

    async def test_routes_are_under_api(self, authenticated_client):
        response = await authenticated_client.get("/api/payments/ledger")
        assert response.status_code == 200

    async def test_unprefixed_routes_are_gone(self, authenticated_client):
        assert (await authenticated_client.get("/payments/ledger")).status_code == 404
        assert (await authenticated_client.post("/auth/login", json={})).status_code == 404

    async def test_health_is_outside_prefix(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestRateLimitMiddleware:

    async def test_requests_over_limit_get_429(self, authenticated_client, monkeypatch):
        monkeypatch.setattr(rate_limiter, "max_requests", 3)
        rate_limiter.reset()

        statuses = [
            (await authenticated_client.get("/api/payments/summary")).status_code
            for _ in range(4)
        ]
        assert statuses == [200, 200, 200, 429]

        response = await authenticated_client.get("/api/payments/summary")
        assert response.status_code == 429
        assert response.json() == {
            "success": False,
            "message": "Too many requests, please try again later",
            "error_type": "rate_limited",
        }
        assert int(response.headers["retry-after"]) >= 1

    async def test_remaining_header(self, authenticated_client, monkeypatch):
        monkeypatch.setattr(rate_limiter, "max_requests", 5)
        rate_limiter.reset()

        first = await authenticated_client.get("/api/payments/summary")
        second = await authenticated_client.get("/api/payments/summary")
        assert first.headers["x-ratelimit-limit"] == "5"
        assert first.headers["x-ratelimit-remaining"] == "4"
        assert second.headers["x-ratelimit-remaining"] == "3"

    async def test_health_not_limited(self, client, monkeypatch):
        monkeypatch.setattr(rate_limiter, "max_requests", 1)
        rate_limiter.reset()

        for _ in range(5):
            assert (await client.get("/health")).status_code == 200

    async def test_forwarded_clients_counted_separately(self, authenticated_client, monkeypatch):
        monkeypatch.setattr(rate_limiter, "max_requests", 1)
        rate_limiter.reset()

        first = await authenticated_client.get(
            "/api/payments/summary", headers={"X-Forwarded-For": "10.0.0.1"}
        )
        other = await authenticated_client.get(
            "/api/payments/summary", headers={"X-Forwarded-For": "10.0.0.2, 172.16.0.1"}
        )
        repeat = await authenticated_client.get(
            "/api/payments/summary", headers={"X-Forwarded-For": "10.0.0.1"}
        )
        assert first.status_code == 200
        assert other.status_code == 200
        assert repeat.status_code == 429


class TestFixedWindowRateLimiter:

    def test_window_resets(self):
        now = [1000.0]
        limiter = FixedWindowRateLimiter(max_requests=2, window_seconds=60, clock=lambda: now[0])

        assert limiter.hit("a")[0] is True
        assert limiter.hit("a")[0] is True
        allowed, remaining, retry_after = limiter.hit("a")
        assert (allowed, remaining) == (False, 0)
        assert retry_after == 60

        now[0] += 59
        assert limiter.hit("a")[0] is False
        now[0] += 1
        assert limiter.hit("a") == (True, 1, 60)

    def test_keys_are_independent(self):
        limiter = FixedWindowRateLimiter(max_requests=1, window_seconds=60, clock=lambda: 0.0)
        assert limiter.hit("a")[0] is True
        assert limiter.hit("b")[0] is True
        assert limiter.hit("a")[0] is False
