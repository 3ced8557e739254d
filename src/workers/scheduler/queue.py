"""
Crawl Queue — idempotent job store.
====================================

At most one row per competitor. The row exists while a crawl is pending
or in flight and disappears when the crawl completes or permanently fails.

Producers (scheduler pass, manual trigger) call ``enqueue``. A second
enqueue for the same competitor is a benign no-op reported as
``SKIPPED_DUPLICATE``: first by an explicit lookup, and for concurrent
producers by the unique constraint on ``competitor_id``.

Consumers (crawl worker) use ``claim_next_job``, ``complete_job`` and
``fail_job``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum as PyEnum

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import as_utc
from core.models import Competitor, CrawlQueue

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class EnqueueOutcome(str, PyEnum):
    ENQUEUED = "enqueued"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    ERROR = "error"


@dataclass(frozen=True)
class EnqueueResult:
    outcome: EnqueueOutcome
    queue_id: int | None = None
    error: str | None = None


async def find_queue_entry(session: AsyncSession, competitor_id: int) -> CrawlQueue | None:
    result = await session.execute(
        select(CrawlQueue).where(CrawlQueue.competitor_id == competitor_id)
    )
    return result.scalar_one_or_none()


async def enqueue(
    session: AsyncSession,
    competitor_id: int,
    url: str,
    priority: int,
    now: datetime,
) -> EnqueueResult:
    """
    Insert a pending job (attempt 0, 3 max attempts, scheduled now) and commit.

    Each call is its own unit of work: it commits on success and rolls
    back on failure, so one bad row never poisons a batch.
    """
    existing = await find_queue_entry(session, competitor_id)
    if existing is not None:
        return EnqueueResult(EnqueueOutcome.SKIPPED_DUPLICATE, queue_id=existing.id)

    entry = CrawlQueue(
        competitor_id=competitor_id,
        url=url,
        priority=priority,
        attempt=0,
        max_attempts=DEFAULT_MAX_ATTEMPTS,
        scheduled_for=as_utc(now),
    )
    session.add(entry)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        # Lost a race against another producer, or the competitor is gone.
        existing = await find_queue_entry(session, competitor_id)
        if existing is not None:
            return EnqueueResult(EnqueueOutcome.SKIPPED_DUPLICATE, queue_id=existing.id)
        logger.error("Integrity error enqueuing competitor %d: %s", competitor_id, exc)
        return EnqueueResult(EnqueueOutcome.ERROR, error=str(exc.orig or exc))
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("Error enqueuing competitor %d: %s", competitor_id, exc)
        return EnqueueResult(EnqueueOutcome.ERROR, error=str(exc))

    logger.info("Enqueued competitor %d (%s) - priority: %d", competitor_id, url, priority)
    return EnqueueResult(EnqueueOutcome.ENQUEUED, queue_id=entry.id)


async def queue_position(session: AsyncSession, entry: CrawlQueue) -> int:
    """1-indexed: rows scheduled no later than ``entry`` with at least its priority."""
    result = await session.execute(
        select(func.count(CrawlQueue.id)).where(
            CrawlQueue.scheduled_for <= entry.scheduled_for,
            CrawlQueue.priority >= entry.priority,
        )
    )
    return result.scalar_one()


@dataclass(frozen=True)
class QueueStats:
    pending: int
    exhausted: int
    average_attempt: float
    oldest_job: datetime | None


async def queue_stats(session: AsyncSession) -> QueueStats:
    result = await session.execute(
        select(
            func.count(CrawlQueue.id),
            func.count(CrawlQueue.id).filter(CrawlQueue.attempt >= CrawlQueue.max_attempts),
            func.avg(CrawlQueue.attempt),
            func.min(CrawlQueue.scheduled_for),
        )
    )
    pending, exhausted, avg_attempt, oldest = result.one()
    return QueueStats(
        pending=pending or 0,
        exhausted=exhausted or 0,
        average_attempt=float(avg_attempt or 0),
        oldest_job=as_utc(oldest),
    )


# ── Consumer side ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClaimedJob:
    id: int
    competitor_id: int
    url: str
    priority: int
    attempt: int
    max_attempts: int


async def claim_next_job(
    session: AsyncSession,
    now: datetime,
    lease: timedelta,
) -> ClaimedJob | None:
    """
    Pick the most urgent runnable job and hide it from other consumers for
    ``lease`` by pushing its scheduled_for forward. The row stays in the
    table so producers still see the competitor as queued.
    """
    now = as_utc(now)
    stmt = (
        select(CrawlQueue)
        .where(
            CrawlQueue.scheduled_for <= now,
            CrawlQueue.attempt < CrawlQueue.max_attempts,
        )
        .order_by(CrawlQueue.priority.desc(), CrawlQueue.scheduled_for.asc(), CrawlQueue.id.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    job = (await session.execute(stmt)).scalar_one_or_none()
    if job is None:
        return None

    job.scheduled_for = now + lease
    claimed = ClaimedJob(
        id=job.id,
        competitor_id=job.competitor_id,
        url=job.url,
        priority=job.priority,
        attempt=job.attempt,
        max_attempts=job.max_attempts,
    )
    await session.commit()
    return claimed


async def complete_job(session: AsyncSession, job: ClaimedJob, crawled_at: datetime) -> None:
    """Successful crawl: stamp the competitor and drop the queue row."""
    await session.execute(
        update(Competitor)
        .where(Competitor.id == job.competitor_id)
        .values(last_crawled_at=as_utc(crawled_at))
    )
    await session.execute(delete(CrawlQueue).where(CrawlQueue.id == job.id))
    await session.commit()


async def fail_job(
    session: AsyncSession,
    job: ClaimedJob,
    now: datetime,
    retry_delay: timedelta,
) -> bool:
    """
    Record a failed attempt. Returns True if the job will be retried,
    False if it was dropped after exhausting its attempts.
    """
    attempt = job.attempt + 1
    if attempt >= job.max_attempts:
        await session.execute(delete(CrawlQueue).where(CrawlQueue.id == job.id))
        await session.commit()
        logger.warning(
            "Dropping crawl job %d for competitor %d after %d attempts",
            job.id, job.competitor_id, attempt,
        )
        return False

    await session.execute(
        update(CrawlQueue)
        .where(CrawlQueue.id == job.id)
        .values(attempt=attempt, scheduled_for=as_utc(now) + retry_delay)
    )
    await session.commit()
    return True
