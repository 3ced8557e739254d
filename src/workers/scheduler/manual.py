"""Manual crawl trigger: a user asks for one competitor to be crawled now."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import LifecycleConfig
from core.lifecycle.eligibility import check_subscription_access
from core.lifecycle.repository import get_current_subscription
from core.models import Business, Competitor
from workers.scheduler.queue import (
    EnqueueOutcome,
    enqueue,
    find_queue_entry,
    queue_position,
)
from workers.scheduler.selector import MANUAL_PRIORITY

logger = logging.getLogger(__name__)


class CompetitorNotFound(Exception):
    pass


class EnqueueFailed(Exception):
    pass


@dataclass(frozen=True)
class TriggerResult:
    message: str
    queued: bool
    position: int
    queue_id: int


async def _owned_competitor(session: AsyncSession, user_id: int, competitor_id: int) -> Competitor | None:
    result = await session.execute(
        select(Competitor)
        .join(Business, Competitor.business_id == Business.id)
        .where(Competitor.id == competitor_id, Business.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _already_queued(session: AsyncSession, competitor_id: int) -> TriggerResult | None:
    existing = await find_queue_entry(session, competitor_id)
    if existing is None:
        return None
    position = await queue_position(session, existing)
    return TriggerResult(message="Already queued", queued=True, position=position, queue_id=existing.id)


async def trigger_manual_crawl(
    session: AsyncSession,
    user_id: int,
    competitor_id: int,
    config: LifecycleConfig,
    now: datetime,
) -> TriggerResult:
    """
    Raises SubscriptionAccessDenied if the user's subscription is not
    eligible, CompetitorNotFound if the competitor is not theirs.
    """
    subscription = await get_current_subscription(session, user_id)
    check_subscription_access(
        subscription,
        now,
        config.grace_period_days,
        allow_grace_period=not config.strict_grace_period_writes,
    ).raise_for_denial()

    competitor = await _owned_competitor(session, user_id, competitor_id)
    if competitor is None:
        raise CompetitorNotFound(competitor_id)
    url = competitor.url

    queued = await _already_queued(session, competitor_id)
    if queued is not None:
        return queued

    result = await enqueue(session, competitor_id, url, MANUAL_PRIORITY, now)
    if result.outcome is EnqueueOutcome.SKIPPED_DUPLICATE:
        queued = await _already_queued(session, competitor_id)
        if queued is not None:
            return queued
    if result.outcome is not EnqueueOutcome.ENQUEUED:
        raise EnqueueFailed(result.error or "Failed to queue crawl")

    logger.info("Manual crawl triggered for competitor %d by user %d", competitor_id, user_id)
    return TriggerResult(
        message="Crawl queued successfully",
        queued=True,
        position=1,
        queue_id=result.queue_id,
    )
