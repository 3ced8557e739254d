"""
Subscription lifecycle services driven by users, admins and onboarding.

The time-driven transitions (trialing → grace_period → expired) live in
``workers.lifecycle.expiration``. Everything here is an explicit action:
starting a trial, converting it, extending it, pausing and resuming.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import as_utc
from core.config import LifecycleConfig
from core.lifecycle.eligibility import check_subscription_access
from core.lifecycle.repository import get_current_subscription
from core.lifecycle.states import TRIAL_PLAN, SubscriptionStatus
from core.models import Business, Competitor, Subscription

logger = logging.getLogger(__name__)

UNLIMITED = -1


class LifecycleError(Exception):
    """An explicit lifecycle action is not valid for the subscription's state."""


def add_months(moment: datetime, months: int = 1) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


async def start_trial(
    session: AsyncSession,
    user_id: int,
    config: LifecycleConfig,
    now: datetime,
) -> Subscription:
    """Create the trial subscription handed out when signup/onboarding completes."""
    now = as_utc(now)
    subscription = Subscription(
        user_id=user_id,
        status=SubscriptionStatus.TRIALING,
        plan_identifier=TRIAL_PLAN,
        competitor_limit=config.trial_competitor_limit,
        current_period_start=now,
        current_period_end=now + timedelta(days=config.trial_duration_days),
        created_at=now,
    )
    session.add(subscription)
    await session.flush()
    logger.info(
        "Started %d-day trial for user %d (subscription %d)",
        config.trial_duration_days, user_id, subscription.id,
    )
    return subscription


async def convert_to_paid(
    session: AsyncSession,
    subscription: Subscription,
    plan_identifier: str,
    competitor_limit: int,
    now: datetime,
) -> Subscription:
    """Manual/payment conversion: active, with a fresh one-month billing period."""
    if plan_identifier == TRIAL_PLAN:
        raise LifecycleError("Cannot convert to the trial plan")
    now = as_utc(now)
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.plan_identifier = plan_identifier
    subscription.competitor_limit = competitor_limit
    subscription.current_period_start = now
    subscription.current_period_end = add_months(now)
    subscription.cancel_at_period_end = False
    await session.flush()
    logger.info("Converted subscription %d to plan %s", subscription.id, plan_identifier)
    return subscription


async def extend_trial(session: AsyncSession, user_id: int, days: int) -> Subscription:
    """
    Push a trial's end date out by ``days``. A subscription already in
    grace period returns to trialing.
    """
    if days <= 0:
        raise LifecycleError("days must be positive")

    subscription = await get_current_subscription(session, user_id)
    if (
        subscription is None
        or subscription.plan_identifier != TRIAL_PLAN
        or subscription.status not in (SubscriptionStatus.TRIALING, SubscriptionStatus.GRACE_PERIOD)
    ):
        raise LifecycleError("Trial subscription not found")

    subscription.current_period_end = as_utc(subscription.current_period_end) + timedelta(days=days)
    subscription.status = SubscriptionStatus.TRIALING
    await session.flush()
    logger.info("Extended trial for user %d by %d days", user_id, days)
    return subscription


async def pause_subscription(session: AsyncSession, user_id: int) -> Subscription:
    subscription = await get_current_subscription(session, user_id)
    if subscription is None or subscription.status is not SubscriptionStatus.ACTIVE:
        raise LifecycleError("No active subscription found")
    subscription.status = SubscriptionStatus.PAUSED
    await session.flush()
    logger.info("Paused subscription %d for user %d", subscription.id, user_id)
    return subscription


async def resume_subscription(session: AsyncSession, user_id: int, now: datetime) -> Subscription:
    subscription = await get_current_subscription(session, user_id)
    if subscription is None or subscription.status is not SubscriptionStatus.PAUSED:
        raise LifecycleError("No paused subscription found")
    now = as_utc(now)
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.current_period_start = now
    subscription.current_period_end = add_months(now)
    await session.flush()
    logger.info("Resumed subscription %d for user %d", subscription.id, user_id)
    return subscription


@dataclass(frozen=True)
class CompetitorLimitStatus:
    allowed: bool
    limit: int
    current: int
    remaining: int | None  # None = unlimited
    error: str | None = None


async def check_competitor_limit(
    session: AsyncSession,
    user_id: int,
    config: LifecycleConfig,
    now: datetime,
) -> CompetitorLimitStatus:
    """
    Adding a competitor is a write action: the grace period does not allow it.
    Raises SubscriptionAccessDenied when the subscription blocks writes.
    """
    subscription = await get_current_subscription(session, user_id)
    check_subscription_access(
        subscription, now, config.grace_period_days, allow_grace_period=False
    ).raise_for_denial()

    current = (
        await session.execute(
            select(func.count(Competitor.id))
            .join(Business, Competitor.business_id == Business.id)
            .where(Business.user_id == user_id)
        )
    ).scalar_one()

    limit = subscription.competitor_limit
    if limit == UNLIMITED:
        return CompetitorLimitStatus(allowed=True, limit=limit, current=current, remaining=None)
    if current >= limit:
        return CompetitorLimitStatus(
            allowed=False,
            limit=limit,
            current=current,
            remaining=0,
            error=(
                f"You have reached your competitor limit of {limit}. "
                "Upgrade your plan to add more competitors."
            ),
        )
    return CompetitorLimitStatus(allowed=True, limit=limit, current=current, remaining=limit - current)

