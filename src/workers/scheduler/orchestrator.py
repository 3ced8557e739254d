"""
Scheduling Pass — ARQ job / cron endpoint
=========================================
1. Select up to N due competitors (never-crawled first, then oldest)
2. Enqueue each one (priority 100 for a first crawl, else 0)
3. Count enqueued / skipped (already queued) / errors

Safe to run repeatedly and concurrently: the queue's per-competitor
uniqueness turns overlapping passes into skips, not duplicates. A crash
mid-pass leaves the rest for the next invocation.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.config import LifecycleConfig, lifecycle_config
from workers.scheduler.queue import EnqueueOutcome, enqueue
from workers.scheduler.selector import select_due

logger = logging.getLogger(__name__)


@dataclass
class SchedulingStats:
    enqueued: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def message(self) -> str:
        return (
            f"Scheduler complete: enqueued {self.enqueued}, "
            f"skipped {self.skipped}, errors {self.errors}"
        )

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


async def run_scheduling_pass(
    session: AsyncSession,
    config: LifecycleConfig = lifecycle_config,
    now: datetime | None = None,
) -> SchedulingStats:
    """
    One selection + enqueue loop. Failures of the selection query itself
    propagate; failures of a single enqueue are counted and skipped.
    """
    now = now or utcnow()
    candidates = await select_due(session, now, config, limit=config.scheduler_batch_limit)

    stats = SchedulingStats()
    for candidate in candidates:
        try:
            result = await enqueue(
                session,
                candidate.competitor_id,
                candidate.url,
                candidate.priority,
                now,
            )
        except Exception:
            await session.rollback()
            logger.exception("Unexpected error enqueuing competitor %d", candidate.competitor_id)
            stats.errors += 1
            continue

        if result.outcome is EnqueueOutcome.ENQUEUED:
            stats.enqueued += 1
        elif result.outcome is EnqueueOutcome.SKIPPED_DUPLICATE:
            stats.skipped += 1
        else:
            stats.errors += 1

    logger.info(stats.message)
    return stats


async def run_scheduler_job(ctx: dict) -> dict:
    """ARQ job entry point."""
    from core.database import async_session_factory

    async with async_session_factory() as session:
        stats = await run_scheduling_pass(session)
    return stats.as_dict()
