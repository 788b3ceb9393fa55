"""SQLAlchemy ORM models - accounts, posts and metrics."""
from crosspost.models.base import Base, CreatedAtMixin, TimestampMixin, UUIDMixin
from crosspost.models.account import Account, AccountStatus, Platform
from crosspost.models.post import Post, PostStatus
from crosspost.models.metric import COUNTER_FIELDS, Metric, MetricType, engagement_rate

__all__ = [
    "Base",
    "CreatedAtMixin",
    "TimestampMixin",
    "UUIDMixin",
    "Account",
    "AccountStatus",
    "Platform",
    "Post",
    "PostStatus",
    "Metric",
    "MetricType",
    "COUNTER_FIELDS",
    "engagement_rate",
]
