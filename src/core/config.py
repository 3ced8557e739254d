"""
Configuration management with pydantic-settings.

All environment variables are validated when the application starts.
If a required variable is missing the process fails immediately with a
clear message (fail-fast).

Lifecycle tunables (trial length, grace period, competitor limit) are
frozen into a ``LifecycleConfig`` once at import time. Scheduler and
lifecycle components receive that object explicitly instead of reading
settings at call time.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────────────
    database_url: str = Field(
        description="Async connection string (postgresql+asyncpg://...)",
    )
    database_url_sync: str = Field(
        default="",
        description="Sync connection string for Alembic (postgresql://...)",
    )

    # ── Redis / ARQ ───────────────────────────────────────────────────
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection string for ARQ workers.",
    )

    # ── Auth ──────────────────────────────────────────────────────────
    cron_secret: str = Field(
        default="",
        description="Shared secret expected as 'Authorization: Bearer <secret>' on cron endpoints.",
    )
    jwt_secret: str = Field(
        default="",
        description="HS256 secret used to verify user bearer tokens.",
    )

    # ── Notifications ─────────────────────────────────────────────────
    slack_webhook_url: str = Field(
        default="",
        description="Slack incoming webhook URL for operator alerts.",
    )
    resend_api_key: str = Field(
        default="",
        description="Resend API key. Empty means dev mode (emails are logged).",
    )
    email_from: str = Field(default="MarketPulse <noreply@marketpulse.app>")
    dashboard_url: str = Field(default="http://localhost:3000")

    # ── Trial / lifecycle ─────────────────────────────────────────────
    trial_duration_days: int = Field(default=14, ge=1)
    trial_grace_period_days: int = Field(default=3, ge=0)
    trial_competitor_limit: int = Field(default=3, ge=-1)
    strict_grace_period_writes: bool = Field(
        default=False,
        description="Block manual crawl triggers while a subscription is in grace period.",
    )

    # ── Scheduler / crawler ───────────────────────────────────────────
    scheduler_batch_limit: int = Field(default=100, ge=1)
    crawl_retry_delay_minutes: int = Field(default=5, ge=0)
    crawl_lease_minutes: int = Field(default=10, ge=1)


class LifecycleConfig(BaseModel):
    """Immutable snapshot of the tunables used by scheduler and lifecycle code."""

    model_config = ConfigDict(frozen=True)

    trial_duration_days: int = 14
    grace_period_days: int = 3
    trial_competitor_limit: int = 3
    strict_grace_period_writes: bool = False
    scheduler_batch_limit: int = 100
    crawl_retry_delay_minutes: int = 5
    crawl_lease_minutes: int = 10

    @classmethod
    def from_settings(cls, s: Settings) -> LifecycleConfig:
        return cls(
            trial_duration_days=s.trial_duration_days,
            grace_period_days=s.trial_grace_period_days,
            trial_competitor_limit=s.trial_competitor_limit,
            strict_grace_period_writes=s.strict_grace_period_writes,
            scheduler_batch_limit=s.scheduler_batch_limit,
            crawl_retry_delay_minutes=s.crawl_retry_delay_minutes,
            crawl_lease_minutes=s.crawl_lease_minutes,
        )


# Singletons — import these everywhere
settings = Settings()  # type: ignore[call-arg]
lifecycle_config = LifecycleConfig.from_settings(settings)
