"""
Trial Expiration — ARQ job / cron endpoint
==========================================
Runs hourly:
1. trialing trials past current_period_end        → grace_period (+ trial_ended email)
2. grace periods past current_period_end + N days → expired      (+ grace_period_ended email)

Each subscription is updated and committed on its own. The status
change is authoritative: a failed email is logged and recorded but never
rolls the transition back. Emails are at-most-once per (user, template)
thanks to the EmailLog "already sent" check, so re-running the job is
harmless.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum as PyEnum
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import as_utc, utcnow
from core.config import LifecycleConfig, lifecycle_config, settings
from core.lifecycle.states import TRIAL_PLAN, SubscriptionStatus, next_scheduled_status
from core.models import EmailLog, EmailStatus, Subscription, User
from core.notifications.templates import (
    GRACE_PERIOD_ENDED,
    TRIAL_ENDED,
    generate_subject,
    render_email_template,
)

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send_email(self, to: str, subject: str, html: str) -> bool: ...


class NotifyOutcome(str, PyEnum):
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    FAILED = "failed"


@dataclass(frozen=True)
class _Candidate:
    subscription_id: int
    user_id: int
    email: str
    name: str | None
    status: SubscriptionStatus
    current_period_end: datetime | None


@dataclass
class ExpirationStats:
    ended_trials: int = 0
    moved_to_grace: int = 0
    grace_period_emails_sent: int = 0
    expired_grace_periods: int = 0
    expired: int = 0
    expired_emails_sent: int = 0
    notification_failures: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)
    elapsed_ms: int = 0

    @property
    def total_emails_sent(self) -> int:
        return self.grace_period_emails_sent + self.expired_emails_sent

    @property
    def message(self) -> str:
        return (
            f"Moved {self.moved_to_grace} to grace period, expired {self.expired} grace periods, "
            f"sent {self.total_emails_sent} emails, {self.errors} errors"
        )

    def as_dict(self) -> dict:
        data = asdict(self)
        data["total_emails_sent"] = self.total_emails_sent
        return data


async def _find_candidates(
    session: AsyncSession,
    status: SubscriptionStatus,
    period_end_before: datetime,
) -> list[_Candidate]:
    """SQL pre-filter; ``_is_due_for`` makes the final call per row."""
    result = await session.execute(
        select(
            Subscription.id,
            Subscription.user_id,
            User.email,
            User.name,
            Subscription.status,
            Subscription.current_period_end,
        )
        .join(User, Subscription.user_id == User.id)
        .where(
            Subscription.status == status,
            Subscription.plan_identifier == TRIAL_PLAN,
            Subscription.current_period_end < period_end_before,
        )
        .order_by(Subscription.current_period_end, Subscription.id)
    )
    return [_Candidate(*row) for row in result.all()]


def _is_due_for(
    candidate: _Candidate,
    to_status: SubscriptionStatus,
    now: datetime,
    config: LifecycleConfig,
) -> bool:
    target = next_scheduled_status(
        candidate.status, candidate.current_period_end, now, config.grace_period_days
    )
    return target is to_status


async def _transition(
    session: AsyncSession,
    subscription_id: int,
    from_status: SubscriptionStatus,
    to_status: SubscriptionStatus,
) -> bool:
    """Conditional update; False when another run already moved the row."""
    result = await session.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id, Subscription.status == from_status)
        .values(status=to_status)
    )
    await session.commit()
    return result.rowcount == 1


async def already_notified(session: AsyncSession, user_id: int, template_name: str) -> bool:
    result = await session.execute(
        select(EmailLog.id)
        .where(
            EmailLog.user_id == user_id,
            EmailLog.template_name == template_name,
            EmailLog.status == EmailStatus.SENT,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def notify_once(
    session: AsyncSession,
    email_client: EmailSender,
    candidate: _Candidate,
    template_name: str,
    template_data: dict,
) -> NotifyOutcome:
    """
    Send ``template_name`` to the candidate unless a SENT entry already
    exists. Never raises for render/send failures.
    """
    if await already_notified(session, candidate.user_id, template_name):
        logger.debug("%s already sent to user %d, skipping", template_name, candidate.user_id)
        return NotifyOutcome.ALREADY_SENT

    subject = generate_subject(template_name)
    error: str | None = None
    try:
        html = render_email_template(template_name, template_data)
        sent = await email_client.send_email(candidate.email, subject, html)
        if not sent:
            error = "Email provider rejected the message"
    except Exception as exc:
        sent = False
        error = str(exc)

    if not sent:
        logger.warning("Failed to send %s to %s: %s", template_name, candidate.email, error)

    session.add(
        EmailLog(
            user_id=candidate.user_id,
            template_name=template_name,
            recipient=candidate.email,
            subject=subject,
            status=EmailStatus.SENT if sent else EmailStatus.FAILED,
            error_message=error,
        )
    )
    await session.commit()
    if not sent:
        return NotifyOutcome.FAILED
    logger.info("Sent %s email to %s", template_name, candidate.email)
    return NotifyOutcome.SENT


async def run_expiration_pass(
    session: AsyncSession,
    email_client: EmailSender,
    config: LifecycleConfig = lifecycle_config,
    now: datetime | None = None,
    dashboard_url: str | None = None,
) -> ExpirationStats:
    started = time.monotonic()
    now = as_utc(now or utcnow())
    dashboard = f"{(dashboard_url or settings.dashboard_url).rstrip('/')}/dashboard"
    stats = ExpirationStats()

    # ── Phase A: trialing → grace_period ─────────────────────────────
    ended_trials = await _find_candidates(session, SubscriptionStatus.TRIALING, now)
    stats.ended_trials = len(ended_trials)
    logger.info("Found %d ended trials to move to grace period", len(ended_trials))

    for candidate in ended_trials:
        if not _is_due_for(candidate, SubscriptionStatus.GRACE_PERIOD, now, config):
            continue
        try:
            moved = await _transition(
                session,
                candidate.subscription_id,
                SubscriptionStatus.TRIALING,
                SubscriptionStatus.GRACE_PERIOD,
            )
        except Exception as exc:
            await session.rollback()
            stats.errors += 1
            stats.error_messages.append(f"User {candidate.user_id}: {exc}")
            logger.exception("Failed to move trial to grace period for user %d", candidate.user_id)
            continue
        if not moved:
            continue
        stats.moved_to_grace += 1
        logger.info("Moved trial to grace period for user %d (%s)", candidate.user_id, candidate.email)

        try:
            outcome = await notify_once(
                session,
                email_client,
                candidate,
                TRIAL_ENDED,
                {
                    "user_name": candidate.name,
                    "dashboard_url": dashboard,
                    "grace_period_days": config.grace_period_days,
                },
            )
        except Exception:
            await session.rollback()
            outcome = NotifyOutcome.FAILED
            logger.exception("Could not record trial_ended email for user %d", candidate.user_id)
        if outcome is NotifyOutcome.SENT:
            stats.grace_period_emails_sent += 1
        elif outcome is NotifyOutcome.FAILED:
            stats.notification_failures += 1

    # ── Phase B: grace_period → expired ──────────────────────────────
    grace_cutoff = now - timedelta(days=config.grace_period_days)
    expired_graces = await _find_candidates(session, SubscriptionStatus.GRACE_PERIOD, grace_cutoff)
    stats.expired_grace_periods = len(expired_graces)
    logger.info("Found %d grace periods to expire", len(expired_graces))

    for candidate in expired_graces:
        if not _is_due_for(candidate, SubscriptionStatus.EXPIRED, now, config):
            continue
        try:
            moved = await _transition(
                session,
                candidate.subscription_id,
                SubscriptionStatus.GRACE_PERIOD,
                SubscriptionStatus.EXPIRED,
            )
        except Exception as exc:
            await session.rollback()
            stats.errors += 1
            stats.error_messages.append(f"User {candidate.user_id}: {exc}")
            logger.exception("Failed to expire grace period for user %d", candidate.user_id)
            continue
        if not moved:
            continue
        stats.expired += 1
        logger.info("Expired grace period for user %d (%s)", candidate.user_id, candidate.email)

        try:
            outcome = await notify_once(
                session,
                email_client,
                candidate,
                GRACE_PERIOD_ENDED,
                {"user_name": candidate.name, "dashboard_url": dashboard},
            )
        except Exception:
            await session.rollback()
            outcome = NotifyOutcome.FAILED
            logger.exception("Could not record grace_period_ended email for user %d", candidate.user_id)
        if outcome is NotifyOutcome.SENT:
            stats.expired_emails_sent += 1
        elif outcome is NotifyOutcome.FAILED:
            stats.notification_failures += 1

    stats.elapsed_ms = int((time.monotonic() - started) * 1000)
    logger.info(stats.message)
    return stats


async def run_expiration_job(ctx: dict) -> dict:
    """ARQ job entry point."""
    from core.database import async_session_factory
    from core.notifications.email import EmailClient

    async with async_session_factory() as session:
        stats = await run_expiration_pass(session, EmailClient())
    return stats.as_dict()
