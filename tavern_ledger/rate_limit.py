"""
Rate limiting for the API routes.

A fixed window per client IP: each client gets RATE_LIMIT_REQUESTS calls
per RATE_LIMIT_WINDOW_SECONDS under the API prefix. Anything outside the
prefix (/health, /docs, /openapi.json) is never counted.

Counters live in process memory, so each worker limits on its own. Over
the limit, the client gets 429 in the usual error envelope with a
Retry-After header.
"""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class FixedWindowRateLimiter:
    """
    Counts hits per key in fixed windows.

    hit() returns (allowed, remaining, retry_after_seconds).
    """

    def __init__(self, max_requests: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def hit(self, key: str) -> tuple[bool, int, int]:
        now = self.clock()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        retry_after = max(1, int(started + self.window_seconds - now))
        if count >= self.max_requests:
            return False, 0, retry_after

        self._windows[key] = (started, count + 1)
        return True, self.max_requests - count - 1, retry_after

    def reset(self) -> None:
        self._windows.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply a FixedWindowRateLimiter to every request under `prefix`."""

    def __init__(self, app, limiter: FixedWindowRateLimiter, prefix: str, enabled: bool = True):
        super().__init__(app)
        self.limiter = limiter
        self.prefix = prefix
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not self.enabled or not (path == self.prefix or path.startswith(self.prefix + "/")):
            return await call_next(request)

        client_ip = self._get_client_ip(request)
        allowed, remaining, retry_after = self.limiter.hit(client_ip)
        if not allowed:
            logger.warning("Rate limit exceeded: client=%s path=%s", client_ip, request.url.path)
            return JSONResponse(
                status_code=429,
                content={
                    "success": False,
                    "message": "Too many requests, please try again later",
                    "error_type": "rate_limited",
                },
                headers={"Retry-After": str(retry_after), "X-RateLimit-Remaining": "0"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    def _get_client_ip(self, request: Request) -> str:
        # First hop of X-Forwarded-For when behind a proxy
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else "unknown"
