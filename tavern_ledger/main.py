"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Logging — configured once from settings
  2. Lifespan manager — handles startup/shutdown (DB table creation, cleanup)
  3. Rate limiting, CORS and request logging middleware
  4. Exception handlers — maps domain errors to the JSON envelope
  5. Router registration — /api/auth and /api/payments

Running locally:
    uvicorn tavern_ledger.main:app --reload
"""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from tavern_ledger import models  # noqa: F401  (registers every table on Base.metadata)
from tavern_ledger.config import settings
from tavern_ledger.database import engine, Base
from tavern_ledger.exceptions import register_exception_handlers
from tavern_ledger.logging_config import setup_logging
from tavern_ledger.rate_limit import FixedWindowRateLimiter, RateLimitMiddleware
from tavern_ledger.routers import auth, payments

setup_logging(level=settings.LOG_LEVEL, log_format=settings.LOG_FORMAT)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup creates any missing tables; shutdown disposes of the engine.
    Production deployments should manage the schema with migrations instead.
    """
    logger.info("Starting %s %s", settings.APP_NAME, settings.APP_VERSION)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    logger.info("Shutting down %s", settings.APP_NAME)
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Payment ledger for quests and guilds: payments, releases, refunds and balances",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

# Shared so tests (and operators) can inspect or reset the counters
rate_limiter = FixedWindowRateLimiter(
    max_requests=settings.RATE_LIMIT_REQUESTS,
    window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
)

# Added before CORS so CORS wraps it and 429s still carry CORS headers
app.add_middleware(
    RateLimitMiddleware,
    limiter=rate_limiter,
    prefix=settings.API_PREFIX,
    enabled=settings.RATE_LIMIT_ENABLED,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """One line per request: method, path, status, duration. Bodies are never logged."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        "%s %s -> %d (%.1f ms)",
        request.method, request.url.path, response.status_code, elapsed_ms,
    )
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(auth.router, prefix=f"{settings.API_PREFIX}/auth", tags=["Auth"])
app.include_router(payments.router, prefix=f"{settings.API_PREFIX}/payments", tags=["Payments"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness check for load balancers and orchestrators."""
    return {"status": "ok", "version": settings.APP_VERSION}
