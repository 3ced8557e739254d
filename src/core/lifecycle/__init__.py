from core.lifecycle.states import (
    POTENTIALLY_ELIGIBLE,
    SCHEDULING_TERMINAL,
    TRIAL_PLAN,
    SubscriptionStatus,
    grace_period_end,
    grace_period_has_ended,
    next_scheduled_status,
    trial_has_ended,
)
from core.lifecycle.eligibility import (
    AccessDecision,
    AccessErrorCode,
    SubscriptionAccessDenied,
    check_subscription_access,
    is_eligible,
)

__all__ = [
    "POTENTIALLY_ELIGIBLE",
    "SCHEDULING_TERMINAL",
    "TRIAL_PLAN",
    "SubscriptionStatus",
    "grace_period_end",
    "grace_period_has_ended",
    "next_scheduled_status",
    "trial_has_ended",
    "AccessDecision",
    "AccessErrorCode",
    "SubscriptionAccessDenied",
    "check_subscription_access",
    "is_eligible",
]
