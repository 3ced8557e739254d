"""Admin API — manual trial extension and conversion."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import require_admin
from api.routes.onboarding import subscription_out
from api.schemas import ConvertRequest, ExtendTrialRequest, SubscriptionOut
from core.clock import utcnow
from core.database import get_db
from core.lifecycle.repository import get_current_subscription
from core.lifecycle.transitions import LifecycleError, convert_to_paid, extend_trial
from core.models import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/trials/extend", response_model=SubscriptionOut)
async def extend(
    req: ExtendTrialRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    try:
        subscription = await extend_trial(session, req.user_id, req.days)
    except LifecycleError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    await session.commit()
    logger.info("Admin %d extended trial of user %d by %d days", admin.id, req.user_id, req.days)
    return subscription_out(subscription)


@router.post("/trials/convert", response_model=SubscriptionOut)
async def convert(
    req: ConvertRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_db),
):
    subscription = await get_current_subscription(session, req.user_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    try:
        subscription = await convert_to_paid(
            session, subscription, req.plan_identifier, req.competitor_limit, utcnow()
        )
    except LifecycleError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    await session.commit()
    logger.info("Admin %d converted user %d to %s", admin.id, req.user_id, req.plan_identifier)
    return subscription_out(subscription)
