"""
Crawl Worker — ARQ job
======================
Drains the crawl queue in priority order:
1. Claim the most urgent runnable job (lease hides it from other workers)
2. Download the competitor URL (curl_cffi, browser impersonation)
3. Save a CrawlSnapshot (content hash for change detection downstream)
4. Success → stamp last_crawled_at and drop the queue row
   Failure → retry after a delay, drop after max_attempts
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from curl_cffi.requests import AsyncSession as CurlSession, RequestsError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.config import LifecycleConfig, lifecycle_config
from core.models import CrawlSnapshot, SnapshotStatus
from workers.scheduler.queue import ClaimedJob, claim_next_job, complete_job, fail_job

logger = logging.getLogger(__name__)

# HTTP client config
DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}
REQUEST_TIMEOUT = 30.0
DEFAULT_BATCH_SIZE = 10

Fetcher = Callable[[str], Awaitable[tuple[int, str]]]


async def fetch_page_html(url: str) -> tuple[int, str]:
    """
    Fetch a URL and return (status_code, html_content).
    Raises RequestsError on failure.
    """
    async with CurlSession(
        headers=DEFAULT_HEADERS,
        timeout=REQUEST_TIMEOUT,
        impersonate="chrome120",
    ) as client:
        response = await client.get(url)
        response.raise_for_status()
        return response.status_code, response.text


@dataclass
class WorkerStats:
    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    dropped: int = 0


async def process_job(
    session: AsyncSession,
    job: ClaimedJob,
    config: LifecycleConfig,
    fetcher: Fetcher = fetch_page_html,
) -> bool:
    """Returns True on success. Fetch failures are recorded on the queue row, not raised."""
    logger.info("[Job %d] Crawling %s (attempt %d)", job.id, job.url, job.attempt + 1)
    try:
        status_code, html = await fetcher(job.url)
    except (RequestsError, OSError) as exc:
        logger.warning("[Job %d] Crawl failed: %s", job.id, exc)
        session.add(
            CrawlSnapshot(
                competitor_id=job.competitor_id,
                status=SnapshotStatus.ERROR,
                error_message=str(exc),
            )
        )
        await session.commit()
        await fail_job(
            session, job, utcnow(), timedelta(minutes=config.crawl_retry_delay_minutes)
        )
        return False

    fetched_at: datetime = utcnow()
    body = html.encode("utf-8", errors="replace")
    session.add(
        CrawlSnapshot(
            competitor_id=job.competitor_id,
            status=SnapshotStatus.FETCHED,
            http_status=status_code,
            content_hash=hashlib.sha256(body).hexdigest(),
            content_length=len(body),
            fetched_at=fetched_at,
        )
    )
    await complete_job(session, job, fetched_at)
    logger.info("[Job %d] Crawled competitor %d (%d bytes)", job.id, job.competitor_id, len(body))
    return True


async def run_crawl_batch(
    session: AsyncSession,
    config: LifecycleConfig = lifecycle_config,
    batch_size: int = DEFAULT_BATCH_SIZE,
    fetcher: Fetcher = fetch_page_html,
) -> WorkerStats:
    stats = WorkerStats()
    lease = timedelta(minutes=config.crawl_lease_minutes)

    for _ in range(batch_size):
        job = await claim_next_job(session, utcnow(), lease)
        if job is None:
            break
        stats.processed += 1
        try:
            ok = await process_job(session, job, config, fetcher)
        except Exception:
            # Lease expiry makes the job runnable again.
            await session.rollback()
            logger.exception("[Job %d] Unexpected error", job.id)
            continue
        if ok:
            stats.succeeded += 1
        elif job.attempt + 1 >= job.max_attempts:
            stats.dropped += 1
        else:
            stats.retried += 1

    logger.info(
        "Crawl batch finished — %d processed, %d ok, %d retried, %d dropped",
        stats.processed, stats.succeeded, stats.retried, stats.dropped,
    )
    return stats


async def run_crawl_worker(ctx: dict) -> dict:
    """ARQ job entry point."""
    from core.database import async_session_factory

    async with async_session_factory() as session:
        stats = await run_crawl_batch(session)
    return asdict(stats)
