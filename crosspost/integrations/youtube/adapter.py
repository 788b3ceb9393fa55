"""YouTube adapter: upload, video statistics, channel analytics, OAuth refresh."""
import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable

import httpx

from crosspost.config import Settings
from crosspost.integrations.base import PlatformAdapter, PublishResult, TokenGrant
from crosspost.integrations.errors import PermanentApiError
from crosspost.integrations.resilience import RateLimiter
from crosspost.integrations.youtube.client import YouTubeClient, report_rows
from crosspost.models.account import Account, Platform
from crosspost.models.post import Post
from crosspost.utils.helpers import parse_iso_duration, to_count, utc_now

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
ANALYTICS_METRICS = "views,estimatedMinutesWatched,subscribersGained,subscribersLost,likes,comments,shares"
DEMOGRAPHICS_DAYS = 28
TOP_COUNTRIES = 10


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


class YouTubeAdapter(PlatformAdapter):
    platform = Platform.YOUTUBE

    def __init__(
        self,
        settings: Settings,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable = utc_now,
    ):
        super().__init__(rate_limiter, transport)
        self.settings = settings
        self.clock = clock

    def _client(self, account: Account) -> YouTubeClient:
        return YouTubeClient(
            account.access_token,
            upload_timeout=self.settings.PUBLISH_TIMEOUT_SECONDS,
            transport=self.transport,
        )

    def _media_file(self, post: Post) -> Path:
        if not post.media_path:
            raise PermanentApiError("YouTube publishing requires a video file", self.platform.value)
        path = Path(self.settings.MEDIA_ROOT) / post.media_path
        if not path.is_file():
            raise PermanentApiError(f"Video file not found: {post.media_path}", self.platform.value)
        return path

    async def publish(self, account: Account, post: Post) -> PublishResult:
        path = self._media_file(post)
        options = post.meta or {}

        title = post.title[:MAX_TITLE_LENGTH]
        if options.get("content_type") == "short" and "#Shorts" not in title:
            title = f"{title[:MAX_TITLE_LENGTH - 8]} #Shorts"

        await self.throttle()
        async with self._client(account) as client:
            result = await client.upload_video(
                path.read_bytes(),
                title=title,
                description=post.description or "",
                tags=list(post.hashtags or []),
                privacy_status=options.get("privacy_status", "public"),
            )

        video_id = result.get("id")
        if not video_id:
            raise PermanentApiError("YouTube upload response had no video id", self.platform.value)

        logger.info("YouTube video uploaded: %s (post %s)", video_id, post.id)
        return PublishResult(platform_post_id=video_id, video_url=watch_url(video_id))

    async def get_post_metrics(self, account: Account, platform_post_id: str) -> dict[str, Any]:
        await self.throttle()
        async with self._client(account) as client:
            video = await client.get_video(platform_post_id)

        if not video:
            raise PermanentApiError(
                f"Video not found: {platform_post_id}", self.platform.value, status_code=404,
            )

        stats = video.get("statistics", {})
        details = video.get("contentDetails", {})
        return {
            "views": to_count(stats.get("viewCount")),
            "likes": to_count(stats.get("likeCount")),
            "comments": to_count(stats.get("commentCount")),
            "shares": 0,
            "favorite_count": to_count(stats.get("favoriteCount")),
            "duration": parse_iso_duration(details.get("duration")),
        }

    async def get_account_analytics(self, account: Account, start: date, end: date) -> dict[str, Any]:
        await self.throttle()
        async with self._client(account) as client:
            report = await client.query_report(start, end, ANALYTICS_METRICS, dimensions="day")

        totals = {name: 0 for name in ANALYTICS_METRICS.split(",")}
        for row in report_rows(report):
            for name in totals:
                totals[name] += to_count(row.get(name))

        return {
            "views": totals["views"],
            "likes": totals["likes"],
            "comments": totals["comments"],
            "shares": totals["shares"],
            "watch_time_minutes": totals["estimatedMinutesWatched"],
            "subscribers_gained": totals["subscribersGained"],
            "subscribers_lost": totals["subscribersLost"],
        }

    async def get_audience_insights(self, account: Account) -> dict[str, Any]:
        end = self.clock().date()
        start = end - timedelta(days=DEMOGRAPHICS_DAYS)

        async with self._client(account) as client:
            await self.throttle()
            age_gender = await client.query_report(start, end, "viewerPercentage", dimensions="ageGroup,gender")
            await self.throttle()
            geography = await client.query_report(
                start, end, "views", dimensions="country",
                max_results=TOP_COUNTRIES, sort="-views",
            )

        return {
            "age_gender": [
                {
                    "age_group": row.get("ageGroup"),
                    "gender": row.get("gender"),
                    "viewer_percentage": float(row.get("viewerPercentage") or 0),
                }
                for row in report_rows(age_gender)
            ],
            "countries": [
                {"country": row.get("country"), "views": to_count(row.get("views"))}
                for row in report_rows(geography)
            ],
        }

    async def refresh_access_token(self, account: Account) -> TokenGrant:
        if not account.refresh_token:
            raise PermanentApiError("No refresh token stored for account", self.platform.value)

        await self.throttle()
        async with self._client(account) as client:
            data = await client.refresh_token(
                account.refresh_token,
                self.settings.YOUTUBE_CLIENT_ID,
                self.settings.YOUTUBE_CLIENT_SECRET,
            )

        access_token = data.get("access_token")
        if not access_token:
            raise PermanentApiError("Token response had no access_token", self.platform.value)

        expires_in = data.get("expires_in")
        return TokenGrant(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            expires_at=self.clock() + timedelta(seconds=int(expires_in)) if expires_in else None,
        )
