"""Initial schema - social accounts, posts and metrics.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ENUMS = ("platform", "account_status", "post_status", "metric_type")


def upgrade() -> None:
    # --- ENUM types ---
    platform = sa.Enum("youtube", "facebook", "instagram", "tiktok", "threads", name="platform")
    account_status = sa.Enum("active", "reconnect_required", name="account_status")
    post_status = sa.Enum("draft", "scheduled", "processing", "published", "failed", name="post_status")
    metric_type = sa.Enum("post", "account", name="metric_type")

    # --- 1. social_accounts ---
    op.create_table(
        "social_accounts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("platform", platform, nullable=False),
        sa.Column("platform_user_id", sa.String(200), nullable=False),
        sa.Column("username", sa.String(200), nullable=True),
        sa.Column("access_token", sa.Text, nullable=False),
        sa.Column("refresh_token", sa.Text, nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", account_status, nullable=False, server_default=sa.text("'active'")),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_social_accounts_status_expiry", "social_accounts", ["status", "token_expires_at"])

    # --- 2. social_posts ---
    op.create_table(
        "social_posts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("account_id", UUID(as_uuid=True), sa.ForeignKey("social_accounts.id"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("hashtags", JSONB, nullable=True),
        sa.Column("media_path", sa.String(500), nullable=True),
        sa.Column("status", post_status, nullable=False, server_default=sa.text("'draft'")),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("platform_post_id", sa.String(200), nullable=True),
        sa.Column("video_url", sa.String(500), nullable=True),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_social_posts_status_scheduled", "social_posts", ["status", "scheduled_at"])

    # --- 3. social_metrics ---
    op.create_table(
        "social_metrics",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("post_id", UUID(as_uuid=True), sa.ForeignKey("social_posts.id"), nullable=True),
        sa.Column("account_id", UUID(as_uuid=True), sa.ForeignKey("social_accounts.id"), nullable=False),
        sa.Column("metric_type", metric_type, nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("views", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("likes", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("comments", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("shares", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("impressions", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("reach", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("engagement_rate", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("demographics", JSONB, nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_social_metrics_account_date", "social_metrics", ["account_id", "date"])
    op.create_index("ix_social_metrics_post_date", "social_metrics", ["post_id", "date"])


def downgrade() -> None:
    op.drop_index("ix_social_metrics_post_date", table_name="social_metrics")
    op.drop_index("ix_social_metrics_account_date", table_name="social_metrics")
    op.drop_index("ix_social_posts_status_scheduled", table_name="social_posts")
    op.drop_index("ix_social_accounts_status_expiry", table_name="social_accounts")

    for table in ("social_metrics", "social_posts", "social_accounts"):
        op.drop_table(table)

    if op.get_bind().dialect.name == "postgresql":
        for name in ENUMS:
            op.execute(f"DROP TYPE IF EXISTS {name}")
