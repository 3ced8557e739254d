"""
FastAPI application entry point.

Cron endpoints (scheduler, trial expiration, queue status), the manual
crawl trigger, and the subscription lifecycle endpoints.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api.routes.admin import router as admin_router
from api.routes.competitors import router as competitors_router
from api.routes.crawl import router as crawl_router
from api.routes.cron import router as cron_router
from api.routes.onboarding import router as onboarding_router
from api.routes.subscriptions import router as subscriptions_router
from core.database import engine
from core.lifecycle.eligibility import SubscriptionAccessDenied

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: startup/shutdown events."""
    yield
    await engine.dispose()


app = FastAPI(
    title="MarketPulse Crawl Scheduler",
    description="Competitor crawl scheduling and trial lifecycle",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(SubscriptionAccessDenied)
async def subscription_access_denied_handler(
    request: Request, exc: SubscriptionAccessDenied
) -> JSONResponse:
    logger.info("Access denied on %s: %s", request.url.path, exc.error_code.value)
    return JSONResponse(
        status_code=403,
        content={"error": exc.message, "errorCode": exc.error_code.value},
    )


# ── Routes ────────────────────────────────────────────────────────────
app.include_router(cron_router)
app.include_router(crawl_router)
app.include_router(onboarding_router)
app.include_router(competitors_router)
app.include_router(subscriptions_router)
app.include_router(admin_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "service": "marketpulse-scheduler"}
