"""Crawl worker: queue consumption, snapshots and retries."""

import hashlib

from curl_cffi.requests import RequestsError
from sqlalchemy import select

from conftest import NOW
from core.models import CrawlSnapshot, SnapshotStatus
from workers.crawler.worker import run_crawl_batch
from workers.scheduler.queue import enqueue, find_queue_entry

HTML = "<html><body><span class='price'>$19.99</span></body></html>"


async def ok_fetcher(url: str) -> tuple[int, str]:
    return 200, HTML


async def failing_fetcher(url: str) -> tuple[int, str]:
    raise RequestsError("Connection refused")


async def _snapshots(session, competitor_id):
    result = await session.execute(
        select(CrawlSnapshot).where(CrawlSnapshot.competitor_id == competitor_id)
    )
    return result.scalars().all()


class TestCrawlBatch:
    async def test_success_records_snapshot_and_clears_queue(self, session, factory, config):
        _, competitor = await factory.owner_with_competitor()
        await enqueue(session, competitor.id, competitor.url, 100, NOW)

        stats = await run_crawl_batch(session, config, fetcher=ok_fetcher)

        assert stats.processed == 1
        assert stats.succeeded == 1
        assert await find_queue_entry(session, competitor.id) is None
        await session.refresh(competitor)
        assert competitor.last_crawled_at is not None
        [snapshot] = await _snapshots(session, competitor.id)
        assert snapshot.status is SnapshotStatus.FETCHED
        assert snapshot.http_status == 200
        assert snapshot.content_hash == hashlib.sha256(HTML.encode()).hexdigest()

    async def test_failure_schedules_retry(self, session, factory, config):
        _, competitor = await factory.owner_with_competitor()
        await enqueue(session, competitor.id, competitor.url, 0, NOW)

        stats = await run_crawl_batch(session, config, fetcher=failing_fetcher)

        assert stats.retried == 1
        entry = await find_queue_entry(session, competitor.id)
        await session.refresh(entry)
        assert entry.attempt == 1
        await session.refresh(competitor)
        assert competitor.last_crawled_at is None
        [snapshot] = await _snapshots(session, competitor.id)
        assert snapshot.status is SnapshotStatus.ERROR
        assert "Connection refused" in snapshot.error_message

    async def test_empty_queue(self, session, config):
        stats = await run_crawl_batch(session, config, fetcher=ok_fetcher)
        assert stats.processed == 0

    async def test_batch_size_caps_work(self, session, factory, config):
        for _ in range(3):
            _, competitor = await factory.owner_with_competitor()
            await enqueue(session, competitor.id, competitor.url, 0, NOW)

        stats = await run_crawl_batch(session, config, batch_size=2, fetcher=ok_fetcher)
        assert stats.processed == 2
