"""Subscription API — competitor limit, pause and resume."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user
from api.routes.onboarding import subscription_out
from api.schemas import CompetitorLimitOut, SubscriptionOut
from core.clock import utcnow
from core.config import lifecycle_config
from core.database import get_db
from core.lifecycle.transitions import (
    LifecycleError,
    check_competitor_limit,
    pause_subscription,
    resume_subscription,
)
from core.models import User

router = APIRouter(tags=["subscriptions"])


@router.get("/api/subscription/limit", response_model=CompetitorLimitOut)
async def competitor_limit(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    status = await check_competitor_limit(session, user.id, lifecycle_config, utcnow())
    return CompetitorLimitOut(
        allowed=status.allowed,
        limit=status.limit,
        current=status.current,
        remaining=status.remaining,
        error=status.error,
    )


@router.post("/api/subscriptions/pause", response_model=SubscriptionOut)
async def pause(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    try:
        subscription = await pause_subscription(session, user.id)
    except LifecycleError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    await session.commit()
    return subscription_out(subscription)


@router.post("/api/subscriptions/resume", response_model=SubscriptionOut)
async def resume(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    try:
        subscription = await resume_subscription(session, user.id, utcnow())
    except LifecycleError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    await session.commit()
    return subscription_out(subscription)
