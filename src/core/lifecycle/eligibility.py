"""
Eligibility predicate and typed access decisions.

``is_eligible`` is the single rule that decides whether a subscription's
competitors may be crawled right now. ``check_subscription_access``
wraps it for user-facing actions and explains *why* access was refused
with a stable ``error_code``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Protocol

from core.clock import as_utc
from core.lifecycle.states import SCHEDULING_TERMINAL, SubscriptionStatus, grace_period_end


class SubscriptionLike(Protocol):
    status: Any
    current_period_end: datetime | None


class AccessErrorCode(str, PyEnum):
    NO_SUBSCRIPTION = "NO_SUBSCRIPTION"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    GRACE_PERIOD = "GRACE_PERIOD"
    SUBSCRIPTION_CANCELED = "SUBSCRIPTION_CANCELED"
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"


class SubscriptionAccessDenied(Exception):
    """A recoverable business condition: the user's plan does not allow the action."""

    def __init__(self, error_code: AccessErrorCode, message: str):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


@dataclass(frozen=True)
class AccessDecision:
    valid: bool
    error_code: AccessErrorCode | None = None
    message: str | None = None
    in_grace_period: bool = False

    def raise_for_denial(self) -> None:
        if not self.valid:
            raise SubscriptionAccessDenied(self.error_code, self.message)


def is_eligible(subscription: SubscriptionLike, now: datetime, grace_period_days: int) -> bool:
    """
    True iff competitors owned by this subscription may be crawled at ``now``.

    - active: always
    - trialing: while now <= current_period_end
    - grace_period: while now <= current_period_end + grace_period_days
    - paused, past_due, canceled, expired: never
    """
    status = SubscriptionStatus(subscription.status)
    period_end = as_utc(subscription.current_period_end)
    now = as_utc(now)

    if status in SCHEDULING_TERMINAL:
        return False
    if status is SubscriptionStatus.ACTIVE:
        return True
    if status is SubscriptionStatus.TRIALING:
        return period_end is not None and now <= period_end
    if status is SubscriptionStatus.GRACE_PERIOD:
        return period_end is not None and now <= grace_period_end(period_end, grace_period_days)
    if status is SubscriptionStatus.PAST_DUE:
        return False
    raise ValueError(f"Unhandled subscription status: {status!r}")


def _grace_days_remaining(period_end: datetime, now: datetime, grace_period_days: int) -> int:
    remaining = grace_period_end(period_end, grace_period_days) - now
    return max(1, math.ceil(remaining.total_seconds() / 86400))


def check_subscription_access(
    subscription: SubscriptionLike | None,
    now: datetime,
    grace_period_days: int,
    *,
    allow_grace_period: bool,
) -> AccessDecision:
    """
    Decide whether a user action is allowed under ``subscription``.

    With ``allow_grace_period=True`` the decision matches ``is_eligible``.
    With ``allow_grace_period=False`` (write actions such as adding a
    competitor) an in-window grace period is refused with GRACE_PERIOD.
    """
    if subscription is None:
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.NO_SUBSCRIPTION,
            message="No subscription found. Please upgrade to continue.",
        )

    status = SubscriptionStatus(subscription.status)
    now = as_utc(now)
    eligible = is_eligible(subscription, now, grace_period_days)

    if status is SubscriptionStatus.GRACE_PERIOD and eligible:
        if allow_grace_period:
            return AccessDecision(valid=True, in_grace_period=True)
        days = _grace_days_remaining(subscription.current_period_end, now, grace_period_days)
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.GRACE_PERIOD,
            message=(
                f"Your trial has ended. You have {days} {'day' if days == 1 else 'days'} "
                "of grace period remaining. Upgrade now to continue."
            ),
            in_grace_period=True,
        )

    if eligible:
        return AccessDecision(valid=True)

    if status is SubscriptionStatus.TRIALING:
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.TRIAL_EXPIRED,
            message="Your free trial has ended. Please upgrade to continue monitoring competitors.",
        )
    if status is SubscriptionStatus.GRACE_PERIOD:
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.TRIAL_EXPIRED,
            message="Your free trial and grace period have ended. Please upgrade to continue.",
        )
    if status is SubscriptionStatus.CANCELED:
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.SUBSCRIPTION_CANCELED,
            message="Your subscription has been canceled. Please reactivate to continue.",
        )
    if status is SubscriptionStatus.PAST_DUE:
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.SUBSCRIPTION_INACTIVE,
            message="Your payment is past due. Please update your payment method to continue.",
        )
    if status is SubscriptionStatus.EXPIRED:
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.SUBSCRIPTION_INACTIVE,
            message="Your subscription has expired. Please renew to continue.",
        )
    if status is SubscriptionStatus.PAUSED:
        return AccessDecision(
            valid=False,
            error_code=AccessErrorCode.SUBSCRIPTION_INACTIVE,
            message="Your subscription is paused. Resume it to continue monitoring.",
        )
    raise ValueError(f"Unhandled subscription status: {status!r}")
