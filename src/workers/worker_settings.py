"""
ARQ Worker Settings — Registers all background jobs.

Usage:
    arq workers.worker_settings.WorkerSettings
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from core.config import settings
from workers.crawler.worker import run_crawl_worker
from workers.lifecycle.expiration import run_expiration_job
from workers.scheduler.orchestrator import run_scheduler_job

logger = logging.getLogger(__name__)


async def startup(ctx: dict) -> None:
    """Called on worker startup."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logger.info("Worker started")


async def shutdown(ctx: dict) -> None:
    """Called on worker shutdown."""
    from core.database import engine

    await engine.dispose()


class WorkerSettings:
    """ARQ worker configuration."""

    functions = [
        run_scheduler_job,
        run_expiration_job,
        run_crawl_worker,
    ]

    on_startup = startup
    on_shutdown = shutdown

    redis_settings = RedisSettings.from_dsn(settings.redis_url)

    # Cron schedule
    cron_jobs = [
        # Scheduling pass: every 5 minutes
        cron(run_scheduler_job, minute=set(range(0, 60, 5)), unique=True),
        # Trial expiration: hourly
        cron(run_expiration_job, minute={0}, unique=True),
        # Crawl worker: every minute
        cron(run_crawl_worker, unique=True),
    ]
