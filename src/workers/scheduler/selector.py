"""
Due-Set Selector
================

Finds the competitors whose crawl interval has elapsed, whose owner is
eligible, and that have no job in the crawl queue yet.

The storage query does the cheap structural filtering (active
competitor, not queued, owner's newest subscription in a status that
*can* be eligible) and streams rows in due order. The time rules
(``is_due``, ``is_eligible``) are plain functions applied to each row,
so they can be tested without a database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import as_utc
from core.config import LifecycleConfig
from core.lifecycle.eligibility import is_eligible
from core.lifecycle.states import POTENTIALLY_ELIGIBLE
from core.models import Business, Competitor, CrawlQueue, Subscription

logger = logging.getLogger(__name__)

FIRST_CRAWL_PRIORITY = 100
RECRAWL_PRIORITY = 0
MANUAL_PRIORITY = 1000

DEFAULT_LIMIT = 100


@dataclass(frozen=True)
class DueCompetitor:
    competitor_id: int
    url: str
    priority: int
    last_crawled_at: datetime | None = None


def is_due(last_crawled_at: datetime | None, crawl_frequency_minutes: int, now: datetime) -> bool:
    """Never crawled, or the interval has strictly elapsed."""
    if last_crawled_at is None:
        return True
    return as_utc(last_crawled_at) + timedelta(minutes=crawl_frequency_minutes) < as_utc(now)


def due_sort_key(last_crawled_at: datetime | None) -> tuple[int, datetime | None]:
    """Never-crawled first, then the most overdue (oldest crawl) first."""
    if last_crawled_at is None:
        return (0, None)
    return (1, as_utc(last_crawled_at))


def order_due(candidates: list[DueCompetitor]) -> list[DueCompetitor]:
    never = [c for c in candidates if c.last_crawled_at is None]
    seen = sorted(
        (c for c in candidates if c.last_crawled_at is not None),
        key=lambda c: due_sort_key(c.last_crawled_at)[1],
    )
    return never + seen


def scheduled_priority(last_crawled_at: datetime | None) -> int:
    return FIRST_CRAWL_PRIORITY if last_crawled_at is None else RECRAWL_PRIORITY


def _candidates_stmt():
    newest_subscription_id = (
        select(Subscription.id)
        .where(Subscription.user_id == Business.user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(1)
        .correlate(Business)
        .scalar_subquery()
    )
    already_queued = exists().where(CrawlQueue.competitor_id == Competitor.id)

    return (
        select(
            Competitor.id.label("competitor_id"),
            Competitor.url.label("url"),
            Competitor.crawl_frequency_minutes.label("crawl_frequency_minutes"),
            Competitor.last_crawled_at.label("last_crawled_at"),
            Subscription.status.label("status"),
            Subscription.current_period_end.label("current_period_end"),
        )
        .join(Business, Competitor.business_id == Business.id)
        .join(Subscription, Subscription.id == newest_subscription_id)
        .where(
            Competitor.is_active.is_(True),
            ~already_queued,
            Subscription.status.in_(list(POTENTIALLY_ELIGIBLE)),
        )
        .order_by(Competitor.last_crawled_at.asc().nulls_first(), Competitor.id.asc())
    )


async def select_due(
    session: AsyncSession,
    now: datetime,
    config: LifecycleConfig,
    limit: int = DEFAULT_LIMIT,
) -> list[DueCompetitor]:
    """Read-only: up to ``limit`` due competitors, never-crawled first, then oldest first."""
    due: list[DueCompetitor] = []
    if limit <= 0:
        return due

    result = await session.stream(_candidates_stmt())
    try:
        async for row in result:
            if not is_due(row.last_crawled_at, row.crawl_frequency_minutes, now):
                continue
            if not is_eligible(row, now, config.grace_period_days):
                continue
            due.append(
                DueCompetitor(
                    competitor_id=row.competitor_id,
                    url=row.url,
                    priority=scheduled_priority(row.last_crawled_at),
                    last_crawled_at=as_utc(row.last_crawled_at),
                )
            )
            if len(due) >= limit:
                break
    finally:
        await result.close()

    logger.info("Found %d competitors due for crawling", len(due))
    return order_due(due)
