"""Tests for platform adapters, error translation, rate limiting and the registry."""
import uuid
from datetime import date, timedelta
from urllib.parse import parse_qs

import httpx
import pytest

from crosspost.integrations.errors import (
    NotSupported,
    PermanentApiError,
    TransientApiError,
    UnsupportedPlatform,
    translate_http_error,
)
from crosspost.integrations.meta.adapter import FacebookAdapter, InstagramAdapter
from crosspost.integrations.registry import AdapterRegistry, build_registry
from crosspost.integrations.resilience import RateLimiter
from crosspost.integrations.youtube.adapter import YouTubeAdapter
from crosspost.models import Account, Platform, Post
from tests.conftest import NOW, FakeAdapter


def _resp(status_code: int = 200, json_data: dict | None = None) -> httpx.Response:
    """Create an httpx.Response with a proper request set."""
    return httpx.Response(
        status_code,
        json=json_data or {},
        request=httpx.Request("GET", "https://test.com"),
    )


def _account(platform: Platform, **overrides) -> Account:
    values = {
        "id": uuid.uuid4(),
        "platform": platform,
        "platform_user_id": "owner-1",
        "access_token": "tok",
        "refresh_token": "refresh-1",
    }
    values.update(overrides)
    return Account(**values)


def _post(**overrides) -> Post:
    values = {
        "id": uuid.uuid4(),
        "title": "Launch video",
        "description": "Our new product",
        "hashtags": ["launch", "video"],
        "media_path": "videos/launch.mp4",
        "meta": {"privacy_status": "unlisted"},
    }
    values.update(overrides)
    return Post(**values)


class Recorder:
    """MockTransport handler that records requests and answers from a route function."""

    def __init__(self, route):
        self.route = route
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class FakeRedis:
    def __init__(self):
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    async def incr(self, key):
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def expire(self, key, seconds):
        self.ttls[key] = seconds

    async def delete(self, key):
        self.values.pop(key, None)


# ═══════════════════════════════════════════════════════
# Error translation
# ═══════════════════════════════════════════════════════


class TestTranslateHttpError:
    def _status_error(self, status: int) -> httpx.HTTPStatusError:
        resp = _resp(status, {"error": {"message": "nope"}})
        return httpx.HTTPStatusError("boom", request=resp.request, response=resp)

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_retryable_statuses_are_transient(self, status):
        error = translate_http_error(self._status_error(status), "youtube")
        assert isinstance(error, TransientApiError)
        assert error.retryable is True
        assert error.platform == "youtube"

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses_are_flagged(self, status):
        error = translate_http_error(self._status_error(status), "instagram")
        assert isinstance(error, PermanentApiError)
        assert error.auth_rejected is True
        assert error.retryable is False

    def test_validation_error_is_permanent(self):
        error = translate_http_error(self._status_error(400), "facebook")
        assert isinstance(error, PermanentApiError)
        assert error.status_code == 400
        assert error.auth_rejected is False
        assert "nope" in error.message

    def test_transport_error_is_transient(self):
        exc = httpx.ConnectError("connection refused", request=httpx.Request("GET", "https://x"))
        assert isinstance(translate_http_error(exc, "youtube"), TransientApiError)


# ═══════════════════════════════════════════════════════
# Rate Limiter Tests
# ═══════════════════════════════════════════════════════


class TestRateLimiter:
    async def test_under_limit(self):
        redis = FakeRedis()
        rl = RateLimiter(redis, {"youtube": 2})
        assert await rl.acquire("youtube") is True
        assert redis.ttls["social_media_rate_limit:youtube"] == 60

    async def test_over_limit(self):
        rl = RateLimiter(FakeRedis(), {"youtube": 2})
        assert await rl.acquire("youtube") is True
        assert await rl.acquire("youtube") is True
        assert await rl.acquire("youtube") is False

    async def test_platforms_have_separate_windows(self):
        rl = RateLimiter(FakeRedis(), {"youtube": 1, "facebook": 1})
        assert await rl.acquire("youtube") is True
        assert await rl.acquire("facebook") is True
        assert await rl.acquire("youtube") is False

    async def test_reset_clears_counter(self):
        rl = RateLimiter(FakeRedis(), {"facebook": 1})
        await rl.acquire("facebook")
        await rl.reset("facebook")
        assert await rl.acquire("facebook") is True

    async def test_unknown_platform_uses_default(self):
        rl = RateLimiter(FakeRedis(), {})
        for _ in range(100):
            assert await rl.acquire("tiktok") is True
        assert await rl.acquire("tiktok") is False

    async def test_exhausted_limit_blocks_request(self, test_settings):
        rl = RateLimiter(FakeRedis(), {"youtube": 0})
        recorder = Recorder(lambda request: _resp(200, {"items": []}))
        adapter = YouTubeAdapter(test_settings, rate_limiter=rl, transport=recorder.transport)

        with pytest.raises(TransientApiError, match="Rate limit"):
            await adapter.get_post_metrics(_account(Platform.YOUTUBE), "abc")
        assert recorder.requests == []


# ═══════════════════════════════════════════════════════
# Registry
# ═══════════════════════════════════════════════════════


class TestAdapterRegistry:
    def test_build_registry_covers_shipped_adapters(self, test_settings):
        registry = build_registry(test_settings)
        assert registry.platforms == {Platform.YOUTUBE, Platform.INSTAGRAM, Platform.FACEBOOK}
        assert isinstance(registry.get("youtube"), YouTubeAdapter)
        assert isinstance(registry.get(Platform.FACEBOOK), FacebookAdapter)

    @pytest.mark.parametrize("tag", ["tiktok", "threads", Platform.TIKTOK])
    def test_known_platform_without_adapter(self, test_settings, tag):
        with pytest.raises(UnsupportedPlatform):
            build_registry(test_settings).get(tag)

    def test_unknown_tag(self):
        with pytest.raises(UnsupportedPlatform, match="myspace"):
            AdapterRegistry().get("myspace")

    def test_register_rejects_mismatched_adapter(self):
        with pytest.raises(ValueError):
            AdapterRegistry({Platform.YOUTUBE: FakeAdapter(Platform.FACEBOOK)})


# ═══════════════════════════════════════════════════════
# YouTube
# ═══════════════════════════════════════════════════════


class TestYouTubeAdapter:
    def _adapter(self, settings, route) -> tuple[YouTubeAdapter, Recorder]:
        recorder = Recorder(route)
        return YouTubeAdapter(settings, transport=recorder.transport, clock=lambda: NOW), recorder

    async def test_publish_uploads_video(self, test_settings, tmp_path):
        (tmp_path / "videos").mkdir()
        (tmp_path / "videos" / "launch.mp4").write_bytes(b"\x00\x01video")
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200, {"id": "abc123"}))

        result = await adapter.publish(_account(Platform.YOUTUBE), _post())

        assert result.platform_post_id == "abc123"
        assert result.video_url == "https://www.youtube.com/watch?v=abc123"
        request = recorder.requests[0]
        assert request.url.path == "/upload/youtube/v3/videos"
        assert request.url.params["uploadType"] == "multipart"
        assert request.headers["authorization"] == "Bearer tok"
        body = request.content
        assert b'"privacyStatus": "unlisted"' in body
        assert b'"tags": ["launch", "video"]' in body
        assert b"\x00\x01video" in body

    async def test_publish_without_media_file(self, test_settings):
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200))

        with pytest.raises(PermanentApiError, match="not found"):
            await adapter.publish(_account(Platform.YOUTUBE), _post(media_path="missing.mp4"))
        with pytest.raises(PermanentApiError, match="requires a video"):
            await adapter.publish(_account(Platform.YOUTUBE), _post(media_path=None))
        assert recorder.requests == []

    async def test_publish_rate_limited_is_transient(self, test_settings, tmp_path):
        (tmp_path / "clip.mp4").write_bytes(b"v")
        adapter, _ = self._adapter(test_settings, lambda request: _resp(429, {"error": "quota"}))

        with pytest.raises(TransientApiError):
            await adapter.publish(_account(Platform.YOUTUBE), _post(media_path="clip.mp4"))

    async def test_get_post_metrics(self, test_settings):
        video = {
            "id": "abc123",
            "statistics": {"viewCount": "1000", "likeCount": "50", "commentCount": "20", "favoriteCount": "3"},
            "contentDetails": {"duration": "PT2M5S"},
        }
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200, {"items": [video]}))

        metrics = await adapter.get_post_metrics(_account(Platform.YOUTUBE), "abc123")

        assert metrics == {
            "views": 1000,
            "likes": 50,
            "comments": 20,
            "shares": 0,
            "favorite_count": 3,
            "duration": 125,
        }
        assert recorder.requests[0].url.params["id"] == "abc123"

    async def test_get_post_metrics_missing_video(self, test_settings):
        adapter, _ = self._adapter(test_settings, lambda request: _resp(200, {"items": []}))

        with pytest.raises(PermanentApiError) as exc_info:
            await adapter.get_post_metrics(_account(Platform.YOUTUBE), "gone")
        assert exc_info.value.status_code == 404

    async def test_revoked_token_is_auth_rejected(self, test_settings):
        adapter, _ = self._adapter(test_settings, lambda request: _resp(401, {"error": "invalid_token"}))

        with pytest.raises(PermanentApiError) as exc_info:
            await adapter.get_post_metrics(_account(Platform.YOUTUBE), "abc")
        assert exc_info.value.auth_rejected

    async def test_account_analytics_sums_daily_rows(self, test_settings):
        report = {
            "columnHeaders": [
                {"name": "day"}, {"name": "views"}, {"name": "estimatedMinutesWatched"},
                {"name": "subscribersGained"}, {"name": "subscribersLost"},
                {"name": "likes"}, {"name": "comments"}, {"name": "shares"},
            ],
            "rows": [
                ["2026-02-27", 100, 30, 4, 1, 10, 2, 1],
                ["2026-02-28", 300, 90, 6, 0, 20, 3, 2],
            ],
        }
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200, report))

        analytics = await adapter.get_account_analytics(
            _account(Platform.YOUTUBE), date(2026, 2, 27), date(2026, 2, 28),
        )

        assert analytics == {
            "views": 400,
            "likes": 30,
            "comments": 5,
            "shares": 3,
            "watch_time_minutes": 120,
            "subscribers_gained": 10,
            "subscribers_lost": 1,
        }
        params = recorder.requests[0].url.params
        assert params["ids"] == "channel==MINE"
        assert params["startDate"] == "2026-02-27"
        assert params["dimensions"] == "day"

    async def test_account_analytics_without_rows(self, test_settings):
        adapter, _ = self._adapter(test_settings, lambda request: _resp(200, {"columnHeaders": []}))
        analytics = await adapter.get_account_analytics(_account(Platform.YOUTUBE), date(2026, 2, 1), date(2026, 2, 7))
        assert analytics["views"] == 0

    async def test_audience_insights(self, test_settings):
        def route(request):
            if request.url.params["dimensions"] == "country":
                return _resp(200, {
                    "columnHeaders": [{"name": "country"}, {"name": "views"}],
                    "rows": [["US", 500], ["KR", 200]],
                })
            return _resp(200, {
                "columnHeaders": [{"name": "ageGroup"}, {"name": "gender"}, {"name": "viewerPercentage"}],
                "rows": [["age18-24", "female", 41.5]],
            })

        adapter, recorder = self._adapter(test_settings, route)
        insights = await adapter.get_audience_insights(_account(Platform.YOUTUBE))

        assert insights["age_gender"] == [{"age_group": "age18-24", "gender": "female", "viewer_percentage": 41.5}]
        assert insights["countries"] == [{"country": "US", "views": 500}, {"country": "KR", "views": 200}]
        country_params = recorder.requests[1].url.params
        assert country_params["maxResults"] == "10"
        assert country_params["startDate"] == (NOW.date() - timedelta(days=28)).isoformat()

    async def test_refresh_keeps_old_refresh_token(self, test_settings):
        adapter, recorder = self._adapter(
            test_settings, lambda request: _resp(200, {"access_token": "new-access", "expires_in": 3600}),
        )

        grant = await adapter.refresh_access_token(_account(Platform.YOUTUBE))

        assert grant.access_token == "new-access"
        assert grant.refresh_token is None
        assert grant.expires_at == NOW + timedelta(seconds=3600)
        form = parse_qs(recorder.requests[0].content.decode())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["refresh-1"]
        assert form["client_id"] == ["yt-client"]

    async def test_refresh_rejected_grant(self, test_settings):
        adapter, _ = self._adapter(test_settings, lambda request: _resp(400, {"error": "invalid_grant"}))
        with pytest.raises(PermanentApiError, match="invalid_grant"):
            await adapter.refresh_access_token(_account(Platform.YOUTUBE))

    async def test_refresh_without_refresh_token(self, test_settings):
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200))
        with pytest.raises(PermanentApiError):
            await adapter.refresh_access_token(_account(Platform.YOUTUBE, refresh_token=None))
        assert recorder.requests == []


# ═══════════════════════════════════════════════════════
# Meta (Instagram / Facebook)
# ═══════════════════════════════════════════════════════


class TestInstagramAdapter:
    def _adapter(self, settings, route, **kwargs) -> tuple[InstagramAdapter, Recorder]:
        recorder = Recorder(route)
        adapter = InstagramAdapter(settings, transport=recorder.transport, poll_interval=0, **kwargs)
        return adapter, recorder

    async def test_publish_reel(self, test_settings):
        def route(request):
            path = request.url.path
            if path == "/v19.0/owner-1/media":
                return _resp(200, {"id": "container-1"})
            if path == "/v19.0/container-1":
                return _resp(200, {"status_code": "FINISHED"})
            if path == "/v19.0/owner-1/media_publish":
                return _resp(200, {"id": "media-9"})
            if path == "/v19.0/media-9":
                return _resp(200, {"permalink": "https://www.instagram.com/reel/xyz/"})
            return _resp(404)

        adapter, recorder = self._adapter(test_settings, route)
        result = await adapter.publish(_account(Platform.INSTAGRAM), _post())

        assert result.platform_post_id == "media-9"
        assert result.video_url == "https://www.instagram.com/reel/xyz/"
        container = parse_qs(recorder.requests[0].content.decode())
        assert container["media_type"] == ["REELS"]
        assert container["video_url"] == ["https://media.example.test/social/videos/launch.mp4"]
        assert container["caption"] == ["Our new product\n\n#launch #video"]
        assert recorder.requests[0].url.params["access_token"] == "tok"
        assert parse_qs(recorder.requests[2].content.decode())["creation_id"] == ["container-1"]

    async def test_publish_processing_error_is_permanent(self, test_settings):
        def route(request):
            if request.url.path.endswith("/media"):
                return _resp(200, {"id": "container-1"})
            return _resp(200, {"status_code": "ERROR"})

        adapter, _ = self._adapter(test_settings, route)
        with pytest.raises(PermanentApiError, match="container-1"):
            await adapter.publish(_account(Platform.INSTAGRAM), _post())

    async def test_publish_still_processing_is_transient(self, test_settings):
        def route(request):
            if request.url.path.endswith("/media"):
                return _resp(200, {"id": "container-1"})
            return _resp(200, {"status_code": "IN_PROGRESS"})

        adapter, recorder = self._adapter(test_settings, route, max_polls=3)
        with pytest.raises(TransientApiError):
            await adapter.publish(_account(Platform.INSTAGRAM), _post())
        assert len(recorder.requests) == 4

    async def test_get_post_metrics(self, test_settings):
        insights = {"data": [
            {"name": "plays", "values": [{"value": 900}]},
            {"name": "impressions", "values": [{"value": 1200}]},
            {"name": "reach", "values": [{"value": 800}]},
            {"name": "likes", "values": [{"value": 40}]},
            {"name": "comments", "values": [{"value": 5}]},
            {"name": "shares", "values": [{"value": 3}]},
            {"name": "saved", "values": [{"value": 7}]},
        ]}
        adapter, _ = self._adapter(test_settings, lambda request: _resp(200, insights))

        metrics = await adapter.get_post_metrics(_account(Platform.INSTAGRAM), "media-9")

        assert metrics["views"] == 900
        assert metrics["impressions"] == 1200
        assert metrics["reach"] == 800
        assert metrics["saves"] == 7
        assert metrics["interactions"] == 0

    async def test_account_analytics(self, test_settings):
        insights = {"data": [
            {"name": "impressions", "values": [{"value": 100}, {"value": 150}]},
            {"name": "reach", "values": [{"value": 80}, {"value": 90}]},
            {"name": "profile_views", "values": [{"value": 4}, {"value": 6}]},
            {"name": "follower_count", "values": [{"value": 1000}, {"value": 1010}]},
        ]}
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200, insights))

        analytics = await adapter.get_account_analytics(
            _account(Platform.INSTAGRAM), date(2026, 2, 22), date(2026, 2, 28),
        )

        assert analytics == {
            "impressions": 250,
            "reach": 170,
            "profile_views": 10,
            "website_clicks": 0,
            "followers": 1010,
        }
        params = recorder.requests[0].url.params
        assert params["period"] == "day"
        assert int(params["until"]) - int(params["since"]) == 7 * 86400

    async def test_audience_insights(self, test_settings):
        insights = {"data": [
            {"name": "audience_gender_age", "values": [{"value": {"F.18-24": 120}}]},
            {"name": "audience_country", "values": [{"value": {"US": 300}}]},
        ]}
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200, insights))

        demographics = await adapter.get_audience_insights(_account(Platform.INSTAGRAM))

        assert demographics == {"gender_age": {"F.18-24": 120}, "countries": {"US": 300}, "cities": {}}
        assert recorder.requests[0].url.params["period"] == "lifetime"

    async def test_token_refresh_not_supported(self, test_settings):
        adapter, _ = self._adapter(test_settings, lambda request: _resp(200))
        with pytest.raises(NotSupported):
            await adapter.refresh_access_token(_account(Platform.INSTAGRAM))


class TestFacebookAdapter:
    def _adapter(self, settings, route) -> tuple[FacebookAdapter, Recorder]:
        recorder = Recorder(route)
        return FacebookAdapter(settings, transport=recorder.transport), recorder

    async def test_publish_page_video(self, test_settings):
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200, {"id": "vid-77"}))

        result = await adapter.publish(_account(Platform.FACEBOOK, platform_user_id="page-5"), _post())

        assert result.platform_post_id == "vid-77"
        assert result.video_url == "https://www.facebook.com/page-5/videos/vid-77"
        request = recorder.requests[0]
        assert request.url.path == "/v19.0/page-5/videos"
        form = parse_qs(request.content.decode())
        assert form["file_url"] == ["https://media.example.test/social/videos/launch.mp4"]
        assert form["title"] == ["Launch video"]

    async def test_get_post_metrics_combines_insights_and_engagement(self, test_settings):
        def route(request):
            if request.url.path.endswith("/insights"):
                return _resp(200, {"data": [
                    {"name": "total_video_views", "values": [{"value": 500}]},
                    {"name": "total_video_impressions", "values": [{"value": 700}]},
                ]})
            return _resp(200, {
                "likes": {"summary": {"total_count": 25}},
                "comments": {"summary": {"total_count": 4}},
                "shares": {"count": 1},
            })

        adapter, _ = self._adapter(test_settings, route)
        metrics = await adapter.get_post_metrics(_account(Platform.FACEBOOK), "vid-77")

        assert metrics["views"] == 500
        assert metrics["impressions"] == 700
        assert (metrics["likes"], metrics["comments"], metrics["shares"]) == (25, 4, 1)

    async def test_page_analytics(self, test_settings):
        insights = {"data": [
            {"name": "page_impressions", "values": [{"value": 10}, {"value": 20}]},
            {"name": "page_engaged_users", "values": [{"value": 3}]},
            {"name": "page_fans", "values": [{"value": 90}, {"value": 95}]},
            {"name": "page_video_views", "values": [{"value": 12}]},
        ]}
        adapter, _ = self._adapter(test_settings, lambda request: _resp(200, insights))

        analytics = await adapter.get_account_analytics(
            _account(Platform.FACEBOOK), date(2026, 2, 22), date(2026, 2, 28),
        )

        assert analytics["impressions"] == 30
        assert analytics["engaged_users"] == 3
        assert analytics["followers"] == 95
        assert analytics["video_views"] == 12
        assert analytics["reach"] == 0

    async def test_demographics_not_supported(self, test_settings):
        adapter, recorder = self._adapter(test_settings, lambda request: _resp(200))
        with pytest.raises(NotSupported):
            await adapter.get_audience_insights(_account(Platform.FACEBOOK))
        assert recorder.requests == []

    async def test_server_error_is_transient(self, test_settings):
        adapter, _ = self._adapter(test_settings, lambda request: _resp(503, {"error": "busy"}))
        with pytest.raises(TransientApiError):
            await adapter.get_account_analytics(_account(Platform.FACEBOOK), date(2026, 2, 1), date(2026, 2, 2))
