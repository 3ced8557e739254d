"""
Subscription State Model
========================

Canonical subscription states and the pure time-boundary predicates the
scheduler, the lifecycle cron and the API all share.

    trialing ──(now > period_end)──▶ grace_period ──(now > period_end + grace)──▶ expired

Transitions to ``active``, ``past_due``, ``canceled`` and ``paused`` come
from payment events or user/admin actions; the scheduler only reads them.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum as PyEnum

from core.clock import as_utc

TRIAL_PLAN = "trial"


class SubscriptionStatus(str, PyEnum):
    TRIALING = "trialing"
    GRACE_PERIOD = "grace_period"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    EXPIRED = "expired"
    PAUSED = "paused"


# Never eligible for crawling, whatever the period dates say.
SCHEDULING_TERMINAL = frozenset(
    {SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELED, SubscriptionStatus.PAUSED}
)

# Statuses that can possibly be eligible; used to pre-filter queries.
POTENTIALLY_ELIGIBLE = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING, SubscriptionStatus.GRACE_PERIOD}
)


def grace_period_end(current_period_end: datetime, grace_period_days: int) -> datetime:
    return as_utc(current_period_end) + timedelta(days=grace_period_days)


def trial_has_ended(
    status: SubscriptionStatus,
    current_period_end: datetime | None,
    now: datetime,
) -> bool:
    """trialing → grace_period predicate."""
    if status is not SubscriptionStatus.TRIALING or current_period_end is None:
        return False
    return as_utc(now) > as_utc(current_period_end)


def grace_period_has_ended(
    status: SubscriptionStatus,
    current_period_end: datetime | None,
    now: datetime,
    grace_period_days: int,
) -> bool:
    """grace_period → expired predicate."""
    if status is not SubscriptionStatus.GRACE_PERIOD or current_period_end is None:
        return False
    return as_utc(now) > grace_period_end(current_period_end, grace_period_days)


def next_scheduled_status(
    status: SubscriptionStatus,
    current_period_end: datetime | None,
    now: datetime,
    grace_period_days: int,
) -> SubscriptionStatus | None:
    """Status the lifecycle cron would move this subscription to, or None."""
    status = SubscriptionStatus(status)
    if status is SubscriptionStatus.TRIALING:
        if trial_has_ended(status, current_period_end, now):
            return SubscriptionStatus.GRACE_PERIOD
        return None
    if status is SubscriptionStatus.GRACE_PERIOD:
        if grace_period_has_ended(status, current_period_end, now, grace_period_days):
            return SubscriptionStatus.EXPIRED
        return None
    if status in (
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
        SubscriptionStatus.EXPIRED,
        SubscriptionStatus.PAUSED,
    ):
        return None
    raise ValueError(f"Unhandled subscription status: {status!r}")
