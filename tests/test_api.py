"""HTTP surface: cron auth, manual trigger, onboarding and admin endpoints."""

from datetime import timedelta

import httpx
import pytest

from api.deps import create_access_token
from api.main import app
from api.routes import cron as cron_routes
from api.routes.cron import get_email_client
from conftest import FakeEmailClient
from core.clock import utcnow
from core.database import get_db
from core.lifecycle.states import SubscriptionStatus
from core.models import UserRole
from workers.scheduler.queue import find_queue_entry

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


def auth(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    email_client = FakeEmailClient()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_client] = lambda: email_client
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        client.email_client = email_client
        yield client
    app.dependency_overrides.clear()


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestCronAuth:
    @pytest.mark.parametrize("path", ["/api/cron/scheduler", "/api/cron/expire-trials", "/api/crawl/status"])
    async def test_missing_or_wrong_secret(self, client, path):
        assert (await client.get(path)).status_code == 401
        wrong = {"Authorization": "Bearer nope"}
        assert (await client.get(path, headers=wrong)).status_code == 401


class TestCronEndpoints:
    async def test_scheduler_enqueues(self, client, factory):
        now = utcnow()
        await factory.owner_with_competitor(period_end=now + timedelta(days=20))

        response = await client.get("/api/cron/scheduler", headers=CRON_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["stats"] == {"enqueued": 1, "skipped": 0, "errors": 0}
        assert "elapsedMs" in body

    async def test_scheduler_failure_returns_500_with_zero_stats(self, client, monkeypatch):
        alerts = []

        async def boom(*args, **kwargs):
            raise RuntimeError("database unavailable")

        async def fake_alert(pass_name, error, elapsed_ms):
            alerts.append((pass_name, error))
            return True

        monkeypatch.setattr(cron_routes, "run_scheduling_pass", boom)
        monkeypatch.setattr(cron_routes, "alert_pass_failure", fake_alert)

        response = await client.get("/api/cron/scheduler", headers=CRON_HEADERS)

        assert response.status_code == 500
        body = response.json()
        assert body["status"] == "error"
        assert body["stats"] == {"enqueued": 0, "skipped": 0, "errors": 0}
        assert alerts == [("Scheduler", "database unavailable")]

    async def test_expire_trials(self, client, factory, session):
        user = await factory.user()
        sub = await factory.subscription(user, period_end=utcnow() - timedelta(hours=1))
        await session.commit()

        response = await client.get("/api/cron/expire-trials", headers=CRON_HEADERS)

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["movedToGrace"] == 1
        assert stats["gracePeriodEmailsSent"] == 1
        assert len(client.email_client.sent) == 1
        await session.refresh(sub)
        assert sub.status is SubscriptionStatus.GRACE_PERIOD

    async def test_crawl_status(self, client, factory):
        _, competitor = await factory.owner_with_competitor(period_end=utcnow() + timedelta(days=20))

        response = await client.get("/api/crawl/status", headers=CRON_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["queue"]["pending"] == 0
        assert body["nextDue"][0]["competitorId"] == competitor.id


class TestTrigger:
    async def test_requires_user_token(self, client):
        response = await client.post("/api/crawl/trigger", json={"competitorId": 1})
        assert response.status_code == 401

    async def test_trigger_and_repeat(self, client, factory, session):
        user, competitor = await factory.owner_with_competitor(period_end=utcnow() + timedelta(days=20))

        first = await client.post(
            "/api/crawl/trigger", json={"competitorId": competitor.id}, headers=auth(user)
        )
        second = await client.post(
            "/api/crawl/trigger", json={"competitorId": competitor.id}, headers=auth(user)
        )

        assert first.status_code == 200
        assert first.json()["message"] == "Crawl queued successfully"
        assert first.json()["position"] == 1
        assert second.json()["message"] == "Already queued"
        assert second.json()["queueId"] == first.json()["queueId"]
        assert await find_queue_entry(session, competitor.id) is not None

    async def test_expired_grace_is_forbidden(self, client, factory):
        user, competitor = await factory.owner_with_competitor(
            status=SubscriptionStatus.GRACE_PERIOD, period_end=utcnow() - timedelta(days=4)
        )

        response = await client.post(
            "/api/crawl/trigger", json={"competitorId": competitor.id}, headers=auth(user)
        )

        assert response.status_code == 403
        assert response.json()["errorCode"] == "TRIAL_EXPIRED"

    async def test_unknown_competitor(self, client, factory):
        user, _ = await factory.owner_with_competitor(period_end=utcnow() + timedelta(days=20))
        response = await client.post(
            "/api/crawl/trigger", json={"competitorId": 424242}, headers=auth(user)
        )
        assert response.status_code == 404


class TestOnboardingAndCompetitors:
    async def test_complete_onboarding_starts_trial(self, client, factory, session):
        user = await factory.user()
        await session.commit()

        response = await client.post(
            "/api/onboarding/complete",
            json={
                "businessName": "Acme",
                "competitors": [{"name": "Rival", "url": "https://rival.example.com"}],
            },
            headers=auth(user),
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body["competitorIds"]) == 1
        assert body["subscription"]["status"] == "trialing"
        assert body["subscription"]["competitorLimit"] == 3

        again = await client.post(
            "/api/onboarding/complete", json={"businessName": "Acme"}, headers=auth(user)
        )
        assert again.status_code == 400

    async def test_add_competitor_until_limit(self, client, factory, session):
        user = await factory.user()
        await factory.subscription(user, period_end=utcnow() + timedelta(days=5), competitor_limit=1)
        business = await factory.business(user)
        await session.commit()

        payload = {"businessId": business.id, "name": "Rival", "url": "https://rival.example.com"}
        created = await client.post("/api/competitors", json=payload, headers=auth(user))
        blocked = await client.post("/api/competitors", json=payload, headers=auth(user))

        assert created.status_code == 201
        assert created.json()["crawlFrequencyMinutes"] == 1440
        assert blocked.status_code == 403

        limit = await client.get("/api/subscription/limit", headers=auth(user))
        assert limit.json()["remaining"] == 0

    async def test_grace_period_blocks_new_competitors(self, client, factory, session):
        user = await factory.user()
        await factory.subscription(
            user, status=SubscriptionStatus.GRACE_PERIOD, period_end=utcnow() - timedelta(days=1)
        )
        business = await factory.business(user)
        await session.commit()

        response = await client.post(
            "/api/competitors",
            json={"businessId": business.id, "name": "Rival", "url": "https://rival.example.com"},
            headers=auth(user),
        )
        assert response.status_code == 403
        assert response.json()["errorCode"] == "GRACE_PERIOD"


class TestSubscriptionsAndAdmin:
    async def test_pause_resume(self, client, factory, session):
        user = await factory.user()
        await factory.subscription(
            user, status=SubscriptionStatus.ACTIVE, plan_identifier="pro",
            period_end=utcnow() + timedelta(days=20),
        )
        await session.commit()

        paused = await client.post("/api/subscriptions/pause", headers=auth(user))
        resumed = await client.post("/api/subscriptions/resume", headers=auth(user))
        again = await client.post("/api/subscriptions/resume", headers=auth(user))

        assert paused.json()["status"] == "paused"
        assert resumed.json()["status"] == "active"
        assert again.status_code == 400

    async def test_admin_only(self, client, factory, session):
        user = await factory.user()
        await session.commit()
        response = await client.post(
            "/api/admin/trials/extend", json={"userId": user.id, "days": 7}, headers=auth(user)
        )
        assert response.status_code == 403

    async def test_extend_and_convert(self, client, factory, session):
        admin = await factory.user(role=UserRole.ADMIN)
        user = await factory.user()
        await factory.subscription(
            user, status=SubscriptionStatus.GRACE_PERIOD, period_end=utcnow() - timedelta(days=1)
        )
        await session.commit()

        extended = await client.post(
            "/api/admin/trials/extend", json={"userId": user.id, "days": 7}, headers=auth(admin)
        )
        converted = await client.post(
            "/api/admin/trials/convert",
            json={"userId": user.id, "planIdentifier": "pro", "competitorLimit": 10},
            headers=auth(admin),
        )

        assert extended.status_code == 200
        assert extended.json()["status"] == "trialing"
        assert converted.status_code == 200
        assert converted.json()["status"] == "active"
        assert converted.json()["competitorLimit"] == 10
