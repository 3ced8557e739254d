"""
Seed script — Populates a local database with demo accounts.
Inserts: an admin user, a trial user with a business and three competitors,
and prints bearer tokens for both so the API can be exercised with curl.

Run:  PYTHONPATH=src python scripts/seed_demo_data.py
"""

from __future__ import annotations

import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.deps import create_access_token
from core.clock import utcnow
from core.config import lifecycle_config, settings
from core.database import build_engine
from core.lifecycle.transitions import start_trial
from core.models import Business, Competitor, User, UserRole

COMPETITORS = [
    {"name": "Newsport", "url": "https://www.newsport.com.ar", "crawl_frequency_minutes": 1440},
    {"name": "Dexter", "url": "https://www.dexter.com.ar", "crawl_frequency_minutes": 720},
    {"name": "Solo Deportes", "url": "https://www.solodeportes.com.ar", "crawl_frequency_minutes": 360},
]


async def _get_or_create_user(session: AsyncSession, email: str, name: str, role: UserRole) -> tuple[User, bool]:
    user = await session.scalar(select(User).where(User.email == email))
    if user:
        return user, False
    user = User(email=email, name=name, role=role)
    session.add(user)
    await session.flush()
    return user, True


async def seed() -> None:
    engine = build_engine(settings.database_url)
    sf = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with sf() as session:
        # ── Admin ──────────────────────────────────────────────────────
        admin, created = await _get_or_create_user(session, "admin@marketpulse.app", "Admin", UserRole.ADMIN)
        print(f"  {'✅' if created else '⚠️ '} Admin '{admin.email}'{'' if created else ' ya existe'}")

        # ── Trial user + business + competitors ────────────────────────
        demo, created = await _get_or_create_user(session, "demo@marketpulse.app", "Demo", UserRole.USER)
        if not created:
            print(f"  ⚠️  Demo user '{demo.email}' ya existe — skipping.")
        else:
            business = Business(user_id=demo.id, name="Demo Sports Store", industry="sporting-goods")
            session.add(business)
            await session.flush()
            for c in COMPETITORS:
                session.add(Competitor(business_id=business.id, **c))
                print(f"  ✅ Competitor: {c['name']} ({c['url']})")
            await start_trial(session, demo.id, lifecycle_config, utcnow())
            print(f"  ✅ Trial de {lifecycle_config.trial_duration_days} días para '{demo.email}'")

        await session.commit()

    await engine.dispose()

    print("\n  🔑 Tokens:")
    print(f"     admin: {create_access_token(admin.id)}")
    print(f"     demo:  {create_access_token(demo.id)}")


if __name__ == "__main__":
    asyncio.run(seed())
