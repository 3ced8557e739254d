"""Onboarding API — business setup and trial start."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user
from api.schemas import OnboardingRequest, OnboardingResponse, SubscriptionOut
from core.clock import utcnow
from core.config import lifecycle_config
from core.database import get_db
from core.lifecycle.repository import get_current_subscription
from core.lifecycle.transitions import UNLIMITED, start_trial
from core.models import Business, Competitor, Subscription, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/onboarding", tags=["onboarding"])


def subscription_out(subscription: Subscription) -> SubscriptionOut:
    return SubscriptionOut(
        id=subscription.id,
        status=subscription.status.value,
        plan_identifier=subscription.plan_identifier,
        competitor_limit=subscription.competitor_limit,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
    )


# ── Endpoints ─────────────────────────────────────────────────────────

@router.post("/complete", response_model=OnboardingResponse)
async def complete_onboarding(
    req: OnboardingRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    """
    Finish signup:
    1. Create the user's Business.
    2. Add the initial competitors (up to the trial limit).
    3. Start the free trial.
    """
    if await get_current_subscription(session, user.id) is not None:
        raise HTTPException(status_code=400, detail="Onboarding already completed")

    limit = lifecycle_config.trial_competitor_limit
    if limit != UNLIMITED and len(req.competitors) > limit:
        raise HTTPException(
            status_code=400,
            detail=f"The free trial allows at most {limit} competitors",
        )

    # 1. Business
    business = Business(user_id=user.id, name=req.business_name, industry=req.industry)
    session.add(business)
    await session.flush()

    # 2. Competitors
    competitors = [
        Competitor(
            business_id=business.id,
            name=c.name,
            url=c.url,
            crawl_frequency_minutes=c.crawl_frequency_minutes,
        )
        for c in req.competitors
    ]
    session.add_all(competitors)
    await session.flush()

    # 3. Trial
    subscription = await start_trial(session, user.id, lifecycle_config, utcnow())
    await session.commit()

    logger.info(
        "Onboarding completed for user %d: business %d, %d competitors",
        user.id, business.id, len(competitors),
    )
    return OnboardingResponse(
        business_id=business.id,
        competitor_ids=[c.id for c in competitors],
        subscription=subscription_out(subscription),
    )
