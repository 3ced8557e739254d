"""
SQLAlchemy 2.0 ORM Models — Competitor Price Monitoring
=======================================================

Conventions:
  - snake_case table names
  - BIGINT PKs (auto-increment)
  - Explicit FKs
  - created_at on every table, updated_at where rows are mutated

Tables are grouped by functional area:
  0. Accounts / Billing
  1. Monitoring configuration
  2. Crawl queue / Operational
  3. Notifications
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from core.lifecycle.states import TRIAL_PLAN, SubscriptionStatus

# SQLite only auto-increments INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


def _values(enum_cls: type[PyEnum]) -> list[str]:
    return [member.value for member in enum_cls]


# ══════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════

class UserRole(str, PyEnum):
    USER = "user"
    ADMIN = "admin"


class EmailStatus(str, PyEnum):
    SENT = "sent"
    FAILED = "failed"


class SnapshotStatus(str, PyEnum):
    FETCHED = "FETCHED"
    ERROR = "ERROR"


# ══════════════════════════════════════════════════════════════════════
# 0. ACCOUNTS / BILLING
# ══════════════════════════════════════════════════════════════════════

class User(Base):
    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=_values), default=UserRole.USER
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    businesses: Mapped[list["Business"]] = relationship("Business", back_populates="owner")
    subscriptions: Mapped[list["Subscription"]] = relationship("Subscription", back_populates="user")


class Subscription(Base):
    """
    Billing state for one user.

    A user may accumulate several rows over time (trial, then paid, ...).
    The most recently created row is authoritative; see
    ``core.lifecycle.repository.get_current_subscription``.
    """
    __tablename__ = "subscription"
    __table_args__ = (
        Index("ix_subscription_user_created", "user_id", "created_at"),
        Index("ix_subscription_status_period_end", "status", "current_period_end"),
        CheckConstraint("competitor_limit >= -1", name="ck_subscription_competitor_limit"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, name="subscription_status", values_callable=_values),
        default=SubscriptionStatus.TRIALING,
        nullable=False,
    )
    plan_identifier: Mapped[str] = mapped_column(String(100), default=TRIAL_PLAN, nullable=False)
    competitor_limit: Mapped[int] = mapped_column(Integer, default=3)  # -1 = unlimited
    current_period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    current_period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    cancel_at_period_end: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="subscriptions")


# ══════════════════════════════════════════════════════════════════════
# 1. MONITORING CONFIGURATION
# ══════════════════════════════════════════════════════════════════════

class Business(Base):
    """The user's own business; competitors hang off it."""
    __tablename__ = "business"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="businesses")
    competitors: Mapped[list["Competitor"]] = relationship(
        "Competitor", back_populates="business", cascade="all, delete-orphan"
    )


class Competitor(Base):
    """A competitor URL monitored on behalf of one business."""
    __tablename__ = "competitor"
    __table_args__ = (
        CheckConstraint("crawl_frequency_minutes > 0", name="ck_competitor_crawl_frequency_positive"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    business_id: Mapped[int] = mapped_column(ForeignKey("business.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    crawl_frequency_minutes: Mapped[int] = mapped_column(Integer, default=1440)  # daily
    last_crawled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    business: Mapped["Business"] = relationship("Business", back_populates="competitors")
    queue_entry: Mapped["CrawlQueue | None"] = relationship(
        "CrawlQueue", back_populates="competitor", uselist=False, cascade="all, delete-orphan"
    )
    snapshots: Mapped[list["CrawlSnapshot"]] = relationship(
        "CrawlSnapshot", back_populates="competitor", cascade="all, delete-orphan"
    )


# ══════════════════════════════════════════════════════════════════════
# 2. CRAWL QUEUE / OPERATIONAL
# ══════════════════════════════════════════════════════════════════════

class CrawlQueue(Base):
    """
    One pending (or in-flight) crawl job per competitor.

    The unique constraint on competitor_id is what makes enqueueing
    idempotent across concurrent scheduler processes.
    """
    __tablename__ = "crawl_queue"
    __table_args__ = (
        Index("ix_crawl_queue_dispatch", "priority", "scheduled_for"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    competitor_id: Mapped[int] = mapped_column(
        ForeignKey("competitor.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)  # snapshot at enqueue time
    priority: Mapped[int] = mapped_column(Integer, default=0)  # higher = more urgent
    attempt: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, default=3)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    competitor: Mapped["Competitor"] = relationship("Competitor", back_populates="queue_entry")


class CrawlSnapshot(Base):
    """Raw fetch result recorded by the crawl worker."""
    __tablename__ = "crawl_snapshot"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    competitor_id: Mapped[int] = mapped_column(
        ForeignKey("competitor.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[SnapshotStatus] = mapped_column(Enum(SnapshotStatus), default=SnapshotStatus.FETCHED)
    http_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    content_length: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    competitor: Mapped["Competitor"] = relationship("Competitor", back_populates="snapshots")


# ══════════════════════════════════════════════════════════════════════
# 3. NOTIFICATIONS
# ══════════════════════════════════════════════════════════════════════

class EmailLog(Base):
    """
    Every lifecycle email attempt. A SENT row for (user, template) is what
    makes lifecycle notifications at-most-once across cron runs.
    """
    __tablename__ = "email_log"
    __table_args__ = (
        Index("ix_email_log_user_template_status", "user_id", "template_name", "status"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("app_user.id", ondelete="CASCADE"), nullable=False)
    template_name: Mapped[str] = mapped_column(String(100), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[EmailStatus] = mapped_column(
        Enum(EmailStatus, name="email_status", values_callable=_values), nullable=False
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
