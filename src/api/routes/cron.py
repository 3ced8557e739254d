"""Cron API — scheduling and trial-expiration passes, called by the platform scheduler."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import require_cron_secret
from api.schemas import CronResponse
from core.clock import utcnow
from core.config import lifecycle_config
from core.database import get_db
from core.notifications.email import EmailClient
from core.notifications.slack import alert_pass_failure
from workers.lifecycle.expiration import ExpirationStats, run_expiration_pass
from workers.scheduler.orchestrator import SchedulingStats, run_scheduling_pass

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/cron",
    tags=["cron"],
    dependencies=[Depends(require_cron_secret)],
)


def get_email_client() -> EmailClient:
    return EmailClient()


def _camel_keys(stats: dict) -> dict:
    return {to_camel(key): value for key, value in stats.items()}


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def _failure(pass_name: str, exc: Exception, zero_stats: dict, started: float) -> JSONResponse:
    elapsed = _elapsed_ms(started)
    logger.exception("%s failed", pass_name)
    try:
        await alert_pass_failure(pass_name, str(exc), elapsed)
    except Exception:
        logger.exception("Could not send failure alert for %s", pass_name)
    body = CronResponse(
        status="error",
        message=str(exc),
        stats=_camel_keys(zero_stats),
        elapsed_ms=elapsed,
        timestamp=utcnow(),
    )
    return JSONResponse(status_code=500, content=body.model_dump(mode="json", by_alias=True))


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("/scheduler", response_model=CronResponse)
async def run_scheduler(session: AsyncSession = Depends(get_db)):
    """Select due competitors and enqueue them."""
    started = time.monotonic()
    logger.info("Scheduler cron started")
    try:
        stats = await run_scheduling_pass(session, lifecycle_config)
    except Exception as exc:
        await session.rollback()
        return await _failure("Scheduler", exc, SchedulingStats().as_dict(), started)

    return CronResponse(
        status="success",
        message=stats.message,
        stats=_camel_keys(stats.as_dict()),
        elapsed_ms=_elapsed_ms(started),
        timestamp=utcnow(),
    )


@router.get("/expire-trials", response_model=CronResponse)
async def expire_trials(
    session: AsyncSession = Depends(get_db),
    email_client: EmailClient = Depends(get_email_client),
):
    """Move ended trials to grace period and expire ended grace periods."""
    started = time.monotonic()
    logger.info("Trial expiration cron started")
    try:
        stats = await run_expiration_pass(session, email_client, lifecycle_config)
    except Exception as exc:
        await session.rollback()
        return await _failure("Trial expiration", exc, ExpirationStats().as_dict(), started)

    return CronResponse(
        status="success",
        message=stats.message,
        stats=_camel_keys(stats.as_dict()),
        elapsed_ms=_elapsed_ms(started),
        timestamp=utcnow(),
    )
