"""Competitor API — limit-checked creation."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user
from api.schemas import CompetitorCreateRequest, CompetitorOut
from core.clock import utcnow
from core.config import lifecycle_config
from core.database import get_db
from core.lifecycle.transitions import check_competitor_limit
from core.models import Business, Competitor, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/competitors", tags=["competitors"])


@router.post("", response_model=CompetitorOut, status_code=201)
async def create_competitor(
    req: CompetitorCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_db),
):
    business = (
        await session.execute(
            select(Business).where(Business.id == req.business_id, Business.user_id == user.id)
        )
    ).scalar_one_or_none()
    if business is None:
        raise HTTPException(status_code=404, detail="Business not found")

    limit = await check_competitor_limit(session, user.id, lifecycle_config, utcnow())
    if not limit.allowed:
        raise HTTPException(status_code=403, detail=limit.error)

    competitor = Competitor(
        business_id=business.id,
        name=req.name,
        url=req.url,
        crawl_frequency_minutes=req.crawl_frequency_minutes,
    )
    session.add(competitor)
    await session.commit()
    logger.info("User %d added competitor %d (%s)", user.id, competitor.id, competitor.url)

    return CompetitorOut(
        id=competitor.id,
        business_id=competitor.business_id,
        name=competitor.name,
        url=competitor.url,
        is_active=competitor.is_active,
        crawl_frequency_minutes=competitor.crawl_frequency_minutes,
    )
