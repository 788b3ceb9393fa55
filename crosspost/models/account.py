"""Social account ORM model."""
import enum
from datetime import datetime, timedelta

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crosspost.models.base import Base, TimestampMixin, UUIDMixin, pg_enum
from crosspost.utils.encryption import EncryptedText
from crosspost.utils.helpers import as_utc


class Platform(str, enum.Enum):
    YOUTUBE = "youtube"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    THREADS = "threads"


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    RECONNECT_REQUIRED = "reconnect_required"


class Account(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "social_accounts"
    __table_args__ = (
        Index("ix_social_accounts_status_expiry", "status", "token_expires_at"),
    )

    platform: Mapped[Platform] = mapped_column(pg_enum(Platform, name="platform"), nullable=False)
    platform_user_id: Mapped[str] = mapped_column(String(200), nullable=False)
    username: Mapped[str | None] = mapped_column(String(200), nullable=True)
    access_token: Mapped[str] = mapped_column(EncryptedText, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(EncryptedText, nullable=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[AccountStatus] = mapped_column(
        pg_enum(AccountStatus, name="account_status"), nullable=False, default=AccountStatus.ACTIVE
    )
    meta: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    posts = relationship("Post", back_populates="account", lazy="raise")
    metrics = relationship("Metric", back_populates="account", lazy="raise")

    def token_expired(self, now: datetime, buffer_minutes: int = 5) -> bool:
        """True when the token expires within ``buffer_minutes`` of ``now``."""
        expires_at = as_utc(self.token_expires_at)
        if expires_at is None:
            return False
        return expires_at - timedelta(minutes=buffer_minutes) <= now

    @property
    def display_name(self) -> str:
        return self.username or self.platform_user_id
