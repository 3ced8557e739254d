"""
Pytest configuration and shared fixtures.

Environment is set before any application module is imported, because
``core.config.settings`` is built at import time.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("SLACK_WEBHOOK_URL", "")

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from core.config import LifecycleConfig  # noqa: E402
from core.database import Base, build_engine  # noqa: E402
from core.lifecycle.states import TRIAL_PLAN, SubscriptionStatus  # noqa: E402
from core.models import Business, Competitor, Subscription, User, UserRole  # noqa: E402

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
async def engine():
    engine = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def config() -> LifecycleConfig:
    return LifecycleConfig()


# ============================================================================
# Collaborators
# ============================================================================

class FakeEmailClient:
    """Records every email; can be told to fail."""

    def __init__(self, fail: bool = False, raise_error: bool = False):
        self.fail = fail
        self.raise_error = raise_error
        self.sent: list[dict] = []

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        if self.raise_error:
            raise RuntimeError("provider unreachable")
        if self.fail:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


@pytest.fixture
def email_client() -> FakeEmailClient:
    return FakeEmailClient()


# ============================================================================
# Data factories
# ============================================================================

class Factory:
    def __init__(self, session: AsyncSession):
        self.session = session
        self._seq = 0

    async def user(self, role: UserRole = UserRole.USER, name: str | None = "Ada") -> User:
        self._seq += 1
        user = User(email=f"user{self._seq}@example.com", name=name, role=role)
        self.session.add(user)
        await self.session.flush()
        return user

    async def subscription(
        self,
        user: User,
        status: SubscriptionStatus = SubscriptionStatus.TRIALING,
        period_end: datetime = NOW + timedelta(days=7),
        period_start: datetime | None = None,
        plan_identifier: str = TRIAL_PLAN,
        competitor_limit: int = 3,
        created_at: datetime | None = None,
    ) -> Subscription:
        subscription = Subscription(
            user_id=user.id,
            status=status,
            plan_identifier=plan_identifier,
            competitor_limit=competitor_limit,
            current_period_start=period_start or period_end - timedelta(days=14),
            current_period_end=period_end,
            created_at=created_at or NOW - timedelta(days=30),
        )
        self.session.add(subscription)
        await self.session.flush()
        return subscription

    async def business(self, user: User, name: str = "Acme Store") -> Business:
        business = Business(user_id=user.id, name=name)
        self.session.add(business)
        await self.session.flush()
        return business

    async def competitor(
        self,
        business: Business,
        url: str | None = None,
        last_crawled_at: datetime | None = None,
        crawl_frequency_minutes: int = 60,
        is_active: bool = True,
    ) -> Competitor:
        self._seq += 1
        competitor = Competitor(
            business_id=business.id,
            name=f"Competitor {self._seq}",
            url=url or f"https://shop{self._seq}.example.com",
            last_crawled_at=last_crawled_at,
            crawl_frequency_minutes=crawl_frequency_minutes,
            is_active=is_active,
        )
        self.session.add(competitor)
        await self.session.flush()
        return competitor

    async def owner_with_competitor(
        self,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        period_end: datetime = NOW + timedelta(days=20),
        last_crawled_at: datetime | None = None,
        crawl_frequency_minutes: int = 60,
    ) -> tuple[User, Competitor]:
        user = await self.user()
        await self.subscription(
            user,
            status=status,
            period_end=period_end,
            plan_identifier=TRIAL_PLAN if status in (
                SubscriptionStatus.TRIALING, SubscriptionStatus.GRACE_PERIOD
            ) else "pro",
        )
        business = await self.business(user)
        competitor = await self.competitor(
            business,
            last_crawled_at=last_crawled_at,
            crawl_frequency_minutes=crawl_frequency_minutes,
        )
        await self.session.commit()
        return user, competitor


@pytest.fixture
def factory(session) -> Factory:
    return Factory(session)
