"""Platform adapter contract shared by every external platform."""
import abc
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import httpx

from crosspost.integrations.errors import NotSupported, TransientApiError
from crosspost.integrations.resilience import RateLimiter
from crosspost.models.account import Account, Platform
from crosspost.models.post import Post

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishResult:
    platform_post_id: str
    video_url: str | None = None


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None


class PlatformAdapter(abc.ABC):
    """Fixed capability set every platform implementation must satisfy.

    Methods raise the typed errors from ``crosspost.integrations.errors``.
    ``transport`` lets callers (tests, proxies) swap the httpx transport.
    """

    platform: Platform

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rate_limiter = rate_limiter
        self.transport = transport

    @abc.abstractmethod
    async def publish(self, account: Account, post: Post) -> PublishResult:
        """Upload the post's media and metadata under the account's credentials."""

    @abc.abstractmethod
    async def get_post_metrics(self, account: Account, platform_post_id: str) -> dict[str, Any]:
        """Return any of views, likes, comments, shares, impressions, reach plus extras."""

    @abc.abstractmethod
    async def get_account_analytics(self, account: Account, start: date, end: date) -> dict[str, Any]:
        """Account-scoped metrics over a date range, same shape as post metrics."""

    async def get_audience_insights(self, account: Account) -> dict[str, Any]:
        raise NotSupported(f"{self.platform.value} does not expose audience demographics", self.platform.value)

    async def refresh_access_token(self, account: Account) -> TokenGrant:
        raise NotSupported(f"{self.platform.value} tokens cannot be refreshed", self.platform.value)

    async def throttle(self) -> None:
        """Consume one request from the platform's rate limit budget."""
        if self.rate_limiter is None:
            return
        if not await self.rate_limiter.acquire(self.platform.value):
            raise TransientApiError(f"Rate limit exceeded for {self.platform.value}", self.platform.value)
