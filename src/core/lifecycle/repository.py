"""Subscription data access."""

from __future__ import annotations

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.models import Subscription


def current_subscription_stmt(user_id: int) -> Select:
    """
    The newest subscription row (by created_at, then id) is the user's
    current one. Older rows are history and are never consulted.
    """
    return (
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .limit(1)
    )


async def get_current_subscription(session: AsyncSession, user_id: int) -> Subscription | None:
    result = await session.execute(current_subscription_stmt(user_id))
    return result.scalar_one_or_none()
