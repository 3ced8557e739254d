"""initial_scheduler_schema

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-17 09:12:44.518203

Adds:
- app_user, subscription (trial lifecycle)
- business, competitor (monitoring configuration)
- crawl_queue (one pending job per competitor), crawl_snapshot
- email_log (lifecycle email de-duplication)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SUBSCRIPTION_STATUS = sa.Enum(
    "trialing", "grace_period", "active", "past_due", "canceled", "expired", "paused",
    name="subscription_status",
)
USER_ROLE = sa.Enum("user", "admin", name="user_role")
EMAIL_STATUS = sa.Enum("sent", "failed", name="email_status")
SNAPSHOT_STATUS = sa.Enum("FETCHED", "ERROR", name="snapshotstatus")


def upgrade() -> None:
    # -- Accounts / billing --
    op.create_table(
        "app_user",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("role", USER_ROLE, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_table(
        "subscription",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("status", SUBSCRIPTION_STATUS, nullable=False),
        sa.Column("plan_identifier", sa.String(length=100), nullable=False),
        sa.Column("competitor_limit", sa.Integer(), nullable=True),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["app_user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("competitor_limit >= -1", name="ck_subscription_competitor_limit"),
    )
    op.create_index("ix_subscription_user_created", "subscription", ["user_id", "created_at"])
    op.create_index("ix_subscription_status_period_end", "subscription", ["status", "current_period_end"])

    # -- Monitoring configuration --
    op.create_table(
        "business",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("industry", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["app_user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "competitor",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("business_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("crawl_frequency_minutes", sa.Integer(), nullable=True),
        sa.Column("last_crawled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["business.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("crawl_frequency_minutes > 0", name="ck_competitor_crawl_frequency_positive"),
    )
    op.create_index("ix_competitor_is_active", "competitor", ["is_active"])

    # -- Crawl queue / snapshots --
    op.create_table(
        "crawl_queue",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("competitor_id", sa.BigInteger(), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=True),
        sa.Column("max_attempts", sa.Integer(), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitor.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("competitor_id"),
    )
    op.create_index("ix_crawl_queue_dispatch", "crawl_queue", ["priority", "scheduled_for"])
    op.create_table(
        "crawl_snapshot",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("competitor_id", sa.BigInteger(), nullable=False),
        sa.Column("status", SNAPSHOT_STATUS, nullable=True),
        sa.Column("http_status", sa.Integer(), nullable=True),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("content_length", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("fetched_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["competitor_id"], ["competitor.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crawl_snapshot_competitor_id", "crawl_snapshot", ["competitor_id"])

    # -- Notifications --
    op.create_table(
        "email_log",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("template_name", sa.String(length=100), nullable=False),
        sa.Column("recipient", sa.String(length=255), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("status", EMAIL_STATUS, nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["app_user.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_email_log_user_template_status", "email_log", ["user_id", "template_name", "status"]
    )


def downgrade() -> None:
    op.drop_index("ix_email_log_user_template_status", table_name="email_log")
    op.drop_table("email_log")
    op.drop_index("ix_crawl_snapshot_competitor_id", table_name="crawl_snapshot")
    op.drop_table("crawl_snapshot")
    op.drop_index("ix_crawl_queue_dispatch", table_name="crawl_queue")
    op.drop_table("crawl_queue")
    op.drop_index("ix_competitor_is_active", table_name="competitor")
    op.drop_table("competitor")
    op.drop_table("business")
    op.drop_index("ix_subscription_status_period_end", table_name="subscription")
    op.drop_index("ix_subscription_user_created", table_name="subscription")
    op.drop_table("subscription")
    op.drop_table("app_user")

    bind = op.get_bind()
    for enum in (SNAPSHOT_STATUS, EMAIL_STATUS, SUBSCRIPTION_STATUS, USER_ROLE):
        enum.drop(bind, checkfirst=True)
