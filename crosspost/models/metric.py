"""Social metric ORM model (append-only observations)."""
import datetime as dt
import enum
import uuid

from sqlalchemy import Date, Float, ForeignKey, Index, Integer, event
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crosspost.models.base import Base, CreatedAtMixin, UUIDMixin, pg_enum

COUNTER_FIELDS = ("views", "likes", "comments", "shares", "impressions", "reach")


class MetricType(str, enum.Enum):
    POST = "post"
    ACCOUNT = "account"


def engagement_rate(views: int, likes: int, comments: int, shares: int) -> float:
    """(likes + comments + shares) / views * 100, rounded to 2 decimals; 0.0 without views."""
    if not views or views <= 0:
        return 0.0
    return round(100 * ((likes or 0) + (comments or 0) + (shares or 0)) / views, 2)


class Metric(Base, UUIDMixin, CreatedAtMixin):
    __tablename__ = "social_metrics"
    __table_args__ = (
        Index("ix_social_metrics_account_date", "account_id", "date"),
        Index("ix_social_metrics_post_date", "post_id", "date"),
    )

    post_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("social_posts.id"), nullable=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("social_accounts.id"), nullable=False
    )
    metric_type: Mapped[MetricType] = mapped_column(pg_enum(MetricType, name="metric_type"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    likes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    comments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    impressions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reach: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    engagement_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    demographics: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    meta: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    # Relationships
    post = relationship("Post", back_populates="metrics", lazy="raise")
    account = relationship("Account", back_populates="metrics", lazy="raise")


@event.listens_for(Metric, "before_insert")
def _derive_engagement_rate(mapper, connection, target: Metric) -> None:
    for field in COUNTER_FIELDS:
        if getattr(target, field) is None:
            setattr(target, field, 0)
    target.engagement_rate = engagement_rate(target.views, target.likes, target.comments, target.shares)
