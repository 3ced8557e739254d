"""Request/response schemas. JSON keys are camelCase on the wire."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Cron ──────────────────────────────────────────────────────────────

class CronResponse(CamelModel):
    status: str
    message: str
    stats: dict
    elapsed_ms: int
    timestamp: datetime


class QueueStatsOut(CamelModel):
    pending: int
    exhausted: int
    average_attempt: float
    oldest_job: datetime | None


class DueCompetitorOut(CamelModel):
    competitor_id: int
    url: str
    priority: int
    last_crawled_at: datetime | None


class CrawlStatusResponse(CamelModel):
    queue: QueueStatsOut
    next_due: list[DueCompetitorOut]
    timestamp: datetime


# ── Crawl trigger ─────────────────────────────────────────────────────

class TriggerRequest(CamelModel):
    competitor_id: int


class TriggerResponse(CamelModel):
    success: bool = True
    message: str
    queued: bool
    position: int
    queue_id: int


# ── Onboarding / competitors ──────────────────────────────────────────

class CompetitorIn(CamelModel):
    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1, max_length=2048)
    crawl_frequency_minutes: int = Field(default=1440, gt=0)


class OnboardingRequest(CamelModel):
    business_name: str = Field(min_length=1, max_length=255)
    industry: str | None = None
    competitors: list[CompetitorIn] = Field(default_factory=list)


class SubscriptionOut(CamelModel):
    id: int
    status: str
    plan_identifier: str
    competitor_limit: int
    current_period_start: datetime
    current_period_end: datetime


class OnboardingResponse(CamelModel):
    business_id: int
    competitor_ids: list[int]
    subscription: SubscriptionOut


class CompetitorCreateRequest(CompetitorIn):
    business_id: int


class CompetitorOut(CamelModel):
    id: int
    business_id: int
    name: str
    url: str
    is_active: bool
    crawl_frequency_minutes: int


class CompetitorLimitOut(CamelModel):
    allowed: bool
    limit: int
    current: int
    remaining: int | None
    error: str | None = None


# ── Admin ─────────────────────────────────────────────────────────────

class ExtendTrialRequest(CamelModel):
    user_id: int
    days: int = Field(gt=0, le=365)


class ConvertRequest(CamelModel):
    user_id: int
    plan_identifier: str = Field(min_length=1, max_length=100)
    competitor_limit: int = Field(ge=-1)
