"""Subscription states, eligibility predicate and access decisions."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from core.lifecycle import (
    AccessErrorCode,
    SubscriptionAccessDenied,
    SubscriptionStatus,
    check_subscription_access,
    is_eligible,
    next_scheduled_status,
)

T = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
MS = timedelta(milliseconds=1)
GRACE = 3


@dataclass
class Sub:
    status: SubscriptionStatus
    current_period_end: datetime | None


class TestIsEligible:
    def test_active_is_always_eligible(self):
        sub = Sub(SubscriptionStatus.ACTIVE, T - timedelta(days=400))
        assert is_eligible(sub, T, GRACE)

    def test_trial_eligible_up_to_and_including_period_end(self):
        sub = Sub(SubscriptionStatus.TRIALING, T)
        assert is_eligible(sub, T - MS, GRACE)
        assert is_eligible(sub, T, GRACE)
        assert not is_eligible(sub, T + MS, GRACE)

    def test_grace_period_window(self):
        sub = Sub(SubscriptionStatus.GRACE_PERIOD, T)
        assert is_eligible(sub, T + timedelta(days=1), GRACE)
        assert is_eligible(sub, T + timedelta(days=GRACE), GRACE)
        assert not is_eligible(sub, T + timedelta(days=GRACE) + MS, GRACE)

    @pytest.mark.parametrize(
        "status",
        [
            SubscriptionStatus.PAUSED,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.CANCELED,
            SubscriptionStatus.EXPIRED,
        ],
    )
    def test_never_eligible_statuses(self, status):
        sub = Sub(status, T + timedelta(days=30))
        assert not is_eligible(sub, T, GRACE)

    def test_naive_period_end_is_read_as_utc(self):
        sub = Sub(SubscriptionStatus.TRIALING, T.replace(tzinfo=None))
        assert is_eligible(sub, T, GRACE)
        assert not is_eligible(sub, T + MS, GRACE)

    def test_status_given_as_plain_string(self):
        sub = Sub("trialing", T)
        assert is_eligible(sub, T, GRACE)


class TestNextScheduledStatus:
    def test_trial_moves_to_grace_only_after_period_end(self):
        assert next_scheduled_status(SubscriptionStatus.TRIALING, T, T, GRACE) is None
        assert (
            next_scheduled_status(SubscriptionStatus.TRIALING, T, T + MS, GRACE)
            is SubscriptionStatus.GRACE_PERIOD
        )

    def test_grace_expires_after_grace_days(self):
        end = T + timedelta(days=GRACE)
        assert next_scheduled_status(SubscriptionStatus.GRACE_PERIOD, T, end, GRACE) is None
        assert (
            next_scheduled_status(SubscriptionStatus.GRACE_PERIOD, T, end + MS, GRACE)
            is SubscriptionStatus.EXPIRED
        )

    def test_other_statuses_are_not_moved_by_the_cron(self):
        for status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED, SubscriptionStatus.EXPIRED):
            assert next_scheduled_status(status, T - timedelta(days=100), T, GRACE) is None


class TestCheckSubscriptionAccess:
    def test_no_subscription(self):
        decision = check_subscription_access(None, T, GRACE, allow_grace_period=True)
        assert not decision.valid
        assert decision.error_code is AccessErrorCode.NO_SUBSCRIPTION

    def test_grace_period_allowed_when_lenient(self):
        sub = Sub(SubscriptionStatus.GRACE_PERIOD, T - timedelta(days=1))
        decision = check_subscription_access(sub, T, GRACE, allow_grace_period=True)
        assert decision.valid
        assert decision.in_grace_period

    def test_grace_period_blocked_when_strict(self):
        sub = Sub(SubscriptionStatus.GRACE_PERIOD, T - timedelta(days=1))
        decision = check_subscription_access(sub, T, GRACE, allow_grace_period=False)
        assert not decision.valid
        assert decision.error_code is AccessErrorCode.GRACE_PERIOD
        assert "2 days" in decision.message

    def test_grace_days_remaining_rounds_up(self):
        sub = Sub(SubscriptionStatus.GRACE_PERIOD, T - timedelta(days=2, hours=23))
        decision = check_subscription_access(sub, T, GRACE, allow_grace_period=False)
        assert "1 day " in decision.message

    def test_grace_period_past_window_is_trial_expired(self):
        sub = Sub(SubscriptionStatus.GRACE_PERIOD, T - timedelta(days=4))
        decision = check_subscription_access(sub, T, GRACE, allow_grace_period=True)
        assert decision.error_code is AccessErrorCode.TRIAL_EXPIRED

    def test_trial_past_end_is_trial_expired(self):
        sub = Sub(SubscriptionStatus.TRIALING, T - MS)
        decision = check_subscription_access(sub, T, GRACE, allow_grace_period=True)
        assert decision.error_code is AccessErrorCode.TRIAL_EXPIRED

    @pytest.mark.parametrize(
        "status, code",
        [
            (SubscriptionStatus.CANCELED, AccessErrorCode.SUBSCRIPTION_CANCELED),
            (SubscriptionStatus.PAST_DUE, AccessErrorCode.SUBSCRIPTION_INACTIVE),
            (SubscriptionStatus.EXPIRED, AccessErrorCode.SUBSCRIPTION_INACTIVE),
            (SubscriptionStatus.PAUSED, AccessErrorCode.SUBSCRIPTION_INACTIVE),
        ],
    )
    def test_inactive_statuses(self, status, code):
        sub = Sub(status, T + timedelta(days=10))
        decision = check_subscription_access(sub, T, GRACE, allow_grace_period=True)
        assert decision.error_code is code

    def test_raise_for_denial(self):
        decision = check_subscription_access(None, T, GRACE, allow_grace_period=True)
        with pytest.raises(SubscriptionAccessDenied) as exc_info:
            decision.raise_for_denial()
        assert exc_info.value.error_code is AccessErrorCode.NO_SUBSCRIPTION

    def test_active_passes(self):
        sub = Sub(SubscriptionStatus.ACTIVE, T + timedelta(days=10))
        decision = check_subscription_access(sub, T, GRACE, allow_grace_period=False)
        assert decision.valid
        decision.raise_for_denial()
