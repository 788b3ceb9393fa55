"""Instagram and Facebook adapters on top of the Meta Graph API.

Page tokens issued through the Meta login flow are long-lived, so neither
adapter implements token refresh.
"""
import asyncio
import calendar
import logging
from datetime import date, timedelta
from typing import Any

import httpx

from crosspost.config import Settings
from crosspost.integrations.base import PlatformAdapter, PublishResult
from crosspost.integrations.errors import PermanentApiError, TransientApiError
from crosspost.integrations.meta.client import MetaGraphClient, first_value, latest_value
from crosspost.integrations.resilience import RateLimiter
from crosspost.models.account import Account, Platform
from crosspost.models.post import Post
from crosspost.utils.helpers import to_count

logger = logging.getLogger(__name__)

INSTAGRAM_CAPTION_LIMIT = 2200

IG_MEDIA_METRICS = ["impressions", "reach", "likes", "comments", "shares", "saved", "plays", "total_interactions"]
IG_ACCOUNT_METRICS = ["impressions", "reach", "profile_views", "website_clicks", "follower_count"]
IG_AUDIENCE_METRICS = ["audience_gender_age", "audience_country", "audience_city"]

FB_VIDEO_METRICS = [
    "total_video_views",
    "total_video_views_unique",
    "total_video_impressions",
    "total_video_avg_time_watched",
    "total_video_complete_views",
]
FB_PAGE_METRICS = [
    "page_impressions",
    "page_impressions_unique",
    "page_engaged_users",
    "page_post_engagements",
    "page_fans",
    "page_video_views",
]


def _timestamp(day: date) -> int:
    return calendar.timegm(day.timetuple())


def _sum_values(values: list[dict[str, Any]]) -> int:
    return sum(to_count(item.get("value")) for item in values)


class MetaAdapter(PlatformAdapter):
    """Shared plumbing for the two Graph API platforms."""

    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(rate_limiter, transport)
        self.settings = settings

    def _client(self, account: Account) -> MetaGraphClient:
        return MetaGraphClient(
            account.access_token,
            self.platform.value,
            version=self.settings.META_GRAPH_VERSION,
            transport=self.transport,
        )

    def _media_url(self, post: Post) -> str:
        if not post.media_path:
            raise PermanentApiError(f"{self.platform.value} publishing requires a video file", self.platform.value)
        return f"{self.settings.MEDIA_BASE_URL.rstrip('/')}/{post.media_path.lstrip('/')}"

    def _window(self, start: date, end: date) -> dict[str, int]:
        # Graph API "until" is exclusive
        return {"since": _timestamp(start), "until": _timestamp(end + timedelta(days=1))}


class InstagramAdapter(MetaAdapter):
    platform = Platform.INSTAGRAM

    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        poll_interval: float = 2.0,
        max_polls: int = 30,
    ):
        super().__init__(settings, rate_limiter, transport)
        self.poll_interval = poll_interval
        self.max_polls = max_polls

    async def publish(self, account: Account, post: Post) -> PublishResult:
        """Publish a reel: create container, wait for processing, publish."""
        video_url = self._media_url(post)
        caption = post.caption[:INSTAGRAM_CAPTION_LIMIT]

        async with self._client(account) as client:
            await self.throttle()
            container_id = await client.create_reel_container(account.platform_user_id, video_url, caption)
            await self._wait_until_ready(client, container_id)

            await self.throttle()
            result = await client.publish_container(account.platform_user_id, container_id)
            media_id = result.get("id")
            if not media_id:
                raise PermanentApiError("Instagram publish response had no media id", self.platform.value)

            await self.throttle()
            media = await client.get_object(media_id, "permalink")

        logger.info("Instagram reel published: %s (post %s)", media_id, post.id)
        return PublishResult(
            platform_post_id=media_id,
            video_url=media.get("permalink") or f"https://www.instagram.com/p/{media_id}/",
        )

    async def _wait_until_ready(self, client: MetaGraphClient, container_id: str) -> None:
        for _ in range(self.max_polls):
            await asyncio.sleep(self.poll_interval)
            await self.throttle()
            status = await client.get_container_status(container_id)
            if status == "FINISHED":
                return
            if status == "ERROR":
                raise PermanentApiError(f"Instagram could not process container {container_id}", self.platform.value)
        raise TransientApiError(f"Instagram container {container_id} still processing", self.platform.value)

    async def get_post_metrics(self, account: Account, platform_post_id: str) -> dict[str, Any]:
        await self.throttle()
        async with self._client(account) as client:
            insights = await client.get_insights(platform_post_id, IG_MEDIA_METRICS)

        values = {name: first_value(v) for name, v in insights.items()}
        return {
            "views": values.get("plays", values.get("impressions", 0)),
            "impressions": values.get("impressions", 0),
            "reach": values.get("reach", 0),
            "likes": values.get("likes", 0),
            "comments": values.get("comments", 0),
            "shares": values.get("shares", 0),
            "saves": values.get("saved", 0),
            "interactions": values.get("total_interactions", 0),
        }

    async def get_account_analytics(self, account: Account, start: date, end: date) -> dict[str, Any]:
        await self.throttle()
        async with self._client(account) as client:
            insights = await client.get_insights(
                account.platform_user_id, IG_ACCOUNT_METRICS, period="day", **self._window(start, end),
            )

        return {
            "impressions": _sum_values(insights.get("impressions", [])),
            "reach": _sum_values(insights.get("reach", [])),
            "profile_views": _sum_values(insights.get("profile_views", [])),
            "website_clicks": _sum_values(insights.get("website_clicks", [])),
            "followers": latest_value(insights.get("follower_count", [])),
        }

    async def get_audience_insights(self, account: Account) -> dict[str, Any]:
        await self.throttle()
        async with self._client(account) as client:
            insights = await client.get_insights(account.platform_user_id, IG_AUDIENCE_METRICS, period="lifetime")

        return {
            "gender_age": first_value(insights.get("audience_gender_age", []), {}),
            "countries": first_value(insights.get("audience_country", []), {}),
            "cities": first_value(insights.get("audience_city", []), {}),
        }


class FacebookAdapter(MetaAdapter):
    platform = Platform.FACEBOOK

    async def publish(self, account: Account, post: Post) -> PublishResult:
        file_url = self._media_url(post)

        await self.throttle()
        async with self._client(account) as client:
            result = await client.publish_page_video(
                account.platform_user_id, file_url, title=post.title, description=post.caption,
            )

        video_id = result.get("id")
        if not video_id:
            raise PermanentApiError("Facebook upload response had no video id", self.platform.value)

        logger.info("Facebook video published: %s (post %s)", video_id, post.id)
        return PublishResult(
            platform_post_id=video_id,
            video_url=f"https://www.facebook.com/{account.platform_user_id}/videos/{video_id}",
        )

    async def get_post_metrics(self, account: Account, platform_post_id: str) -> dict[str, Any]:
        async with self._client(account) as client:
            await self.throttle()
            insights = await client.get_insights(platform_post_id, FB_VIDEO_METRICS)
            await self.throttle()
            engagement = await client.get_object(
                platform_post_id, "likes.summary(true),comments.summary(true),shares",
            )

        values = {name: first_value(v) for name, v in insights.items()}
        return {
            "views": values.get("total_video_views", 0),
            "impressions": values.get("total_video_impressions", 0),
            "reach": values.get("total_video_views_unique", 0),
            "likes": engagement.get("likes", {}).get("summary", {}).get("total_count", 0),
            "comments": engagement.get("comments", {}).get("summary", {}).get("total_count", 0),
            "shares": engagement.get("shares", {}).get("count", 0),
            "avg_watch_time": values.get("total_video_avg_time_watched", 0),
            "complete_views": values.get("total_video_complete_views", 0),
        }

    async def get_account_analytics(self, account: Account, start: date, end: date) -> dict[str, Any]:
        await self.throttle()
        async with self._client(account) as client:
            insights = await client.get_insights(
                account.platform_user_id, FB_PAGE_METRICS, period="day", **self._window(start, end),
            )

        return {
            "impressions": _sum_values(insights.get("page_impressions", [])),
            "reach": _sum_values(insights.get("page_impressions_unique", [])),
            "engaged_users": _sum_values(insights.get("page_engaged_users", [])),
            "engagements": _sum_values(insights.get("page_post_engagements", [])),
            "followers": latest_value(insights.get("page_fans", [])),
            "video_views": _sum_values(insights.get("page_video_views", [])),
        }
