"""Crawl API — manual trigger and queue status."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, require_cron_secret
from api.schemas import (
    CrawlStatusResponse,
    DueCompetitorOut,
    QueueStatsOut,
    TriggerRequest,
    TriggerResponse,
)
from core.clock import utcnow
from core.config import lifecycle_config
from core.database import get_db
from core.models import User
from workers.scheduler.manual import CompetitorNotFound, EnqueueFailed, trigger_manual_crawl
from workers.scheduler.queue import queue_stats
from workers.scheduler.selector import select_due

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/crawl", tags=["crawl"])

STATUS_PREVIEW_LIMIT = 10


@router.post("/trigger", response_model=TriggerResponse)
async def trigger_crawl(
    req: TriggerRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    """Queue one competitor for an immediate crawl (priority 1000)."""
    try:
        result = await trigger_manual_crawl(
            session, user.id, req.competitor_id, lifecycle_config, utcnow()
        )
    except CompetitorNotFound:
        raise HTTPException(status_code=404, detail="Competitor not found")
    except EnqueueFailed as exc:
        logger.error("Manual trigger failed for competitor %d: %s", req.competitor_id, exc)
        raise HTTPException(status_code=500, detail="Failed to queue crawl")

    return TriggerResponse(
        message=result.message,
        queued=result.queued,
        position=result.position,
        queue_id=result.queue_id,
    )


@router.get(
    "/status",
    response_model=CrawlStatusResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def crawl_status(session: AsyncSession = Depends(get_db)):
    """Queue health plus a preview of the next competitors the scheduler would pick."""
    now = utcnow()
    stats = await queue_stats(session)
    due = await select_due(session, now, lifecycle_config, limit=STATUS_PREVIEW_LIMIT)
    return CrawlStatusResponse(
        queue=QueueStatsOut(
            pending=stats.pending,
            exhausted=stats.exhausted,
            average_attempt=stats.average_attempt,
            oldest_job=stats.oldest_job,
        ),
        next_due=[
            DueCompetitorOut(
                competitor_id=d.competitor_id,
                url=d.url,
                priority=d.priority,
                last_crawled_at=d.last_crawled_at,
            )
            for d in due
        ],
        timestamp=now,
    )
