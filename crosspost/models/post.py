"""Social post ORM model."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crosspost.models.base import Base, TimestampMixin, UUIDMixin, pg_enum


class PostStatus(str, enum.Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    PUBLISHED = "published"
    FAILED = "failed"


class Post(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "social_posts"
    __table_args__ = (
        Index("ix_social_posts_status_scheduled", "status", "scheduled_at"),
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("social_accounts.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hashtags: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    media_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[PostStatus] = mapped_column(
        pg_enum(PostStatus, name="post_status"), nullable=False, default=PostStatus.DRAFT
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    platform_post_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    meta: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    # Relationships
    account = relationship("Account", back_populates="posts", lazy="selectin")
    metrics = relationship("Metric", back_populates="post", lazy="raise")

    @property
    def caption(self) -> str:
        """Description followed by hashtags, as most platforms expect."""
        parts = [self.description or ""]
        if self.hashtags:
            parts.append(" ".join(f"#{tag.lstrip('#')}" for tag in self.hashtags))
        return "\n\n".join(p for p in parts if p)
