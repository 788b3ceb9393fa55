"""YouTube Data API v3 / Analytics API v2 client."""
import json
import logging
from datetime import date
from typing import Any

import httpx

from crosspost.integrations.errors import translate_http_error

logger = logging.getLogger(__name__)

BASE_URL = "https://www.googleapis.com/youtube/v3"
UPLOAD_URL = "https://www.googleapis.com/upload/youtube/v3/videos"
ANALYTICS_URL = "https://youtubeanalytics.googleapis.com/v2/reports"
TOKEN_URL = "https://oauth2.googleapis.com/token"

PLATFORM = "youtube"


class YouTubeClient:
    """Async client for the YouTube APIs.

    All methods expect a decrypted access_token and raise the adapter error
    taxonomy instead of raw httpx errors.
    """

    def __init__(
        self,
        access_token: str,
        timeout: float = 60.0,
        upload_timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.upload_timeout = upload_timeout
        self._client = httpx.AsyncClient(
            base_url=BASE_URL,
            timeout=timeout,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def _send(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise translate_http_error(exc, PLATFORM) from exc
        return resp.json() if resp.content else {}

    # ── Video Upload ──

    async def upload_video(
        self,
        video_bytes: bytes,
        title: str,
        description: str = "",
        tags: list[str] | None = None,
        privacy_status: str = "public",
        category_id: str = "22",
    ) -> dict[str, Any]:
        """Upload a video with its snippet/status metadata in one multipart request."""
        metadata = {
            "snippet": {
                "title": title,
                "description": description,
                "tags": tags or [],
                "categoryId": category_id,
            },
            "status": {
                "privacyStatus": privacy_status,
            },
        }
        return await self._send(
            "POST",
            UPLOAD_URL,
            params={"uploadType": "multipart", "part": "snippet,status"},
            files={
                "metadata": ("metadata", json.dumps(metadata), "application/json"),
                "media": ("video.mp4", video_bytes, "video/*"),
            },
            timeout=self.upload_timeout,
        )

    # ── Statistics ──

    async def get_video(self, video_id: str) -> dict[str, Any]:
        """Get statistics and content details for one video ({} if it does not exist)."""
        data = await self._send(
            "GET",
            "/videos",
            params={"part": "statistics,contentDetails", "id": video_id},
        )
        items = data.get("items", [])
        return items[0] if items else {}

    async def query_report(
        self,
        start: date,
        end: date,
        metrics: str,
        dimensions: str,
        max_results: int | None = None,
        sort: str | None = None,
    ) -> dict[str, Any]:
        """Run a YouTube Analytics report for the authenticated channel."""
        params: dict[str, Any] = {
            "ids": "channel==MINE",
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "metrics": metrics,
            "dimensions": dimensions,
        }
        if max_results:
            params["maxResults"] = max_results
        if sort:
            params["sort"] = sort
        return await self._send("GET", ANALYTICS_URL, params=params)

    # ── OAuth ──

    async def refresh_token(self, refresh_token: str, client_id: str, client_secret: str) -> dict[str, Any]:
        """Exchange a refresh token for a new access token."""
        return await self._send(
            "POST",
            TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )


def report_rows(report: dict[str, Any]) -> list[dict[str, Any]]:
    """Turn an Analytics report into a list of {column: value} dicts."""
    headers = [h["name"] for h in report.get("columnHeaders", [])]
    return [dict(zip(headers, row)) for row in report.get("rows") or []]
