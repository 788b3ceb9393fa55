"""Meta Graph API client for Instagram and Facebook."""
import logging
from typing import Any

import httpx

from crosspost.integrations.errors import translate_http_error

logger = logging.getLogger(__name__)

GRAPH_URL = "https://graph.facebook.com"


class MetaGraphClient:
    """Async client for Meta Graph API (Instagram + Facebook).

    All methods expect a decrypted access_token.
    """

    def __init__(
        self,
        access_token: str,
        platform: str,
        version: str = "v19.0",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.platform = platform
        self._client = httpx.AsyncClient(
            base_url=f"{GRAPH_URL}/{version}",
            timeout=timeout,
            params={"access_token": access_token},
            transport=transport,
        )

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def _send(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise translate_http_error(exc, self.platform) from exc
        return resp.json() if resp.content else {}

    async def get_object(self, object_id: str, fields: str) -> dict[str, Any]:
        return await self._send("GET", f"/{object_id}", params={"fields": fields})

    # ── Publishing ──

    async def create_reel_container(self, ig_user_id: str, video_url: str, caption: str = "") -> str:
        """Step 1 of a reel publish: register the video URL, returns the container id."""
        data = await self._send(
            "POST",
            f"/{ig_user_id}/media",
            data={"media_type": "REELS", "video_url": video_url, "caption": caption},
        )
        return data["id"]

    async def get_container_status(self, container_id: str) -> str:
        data = await self.get_object(container_id, "status_code")
        return data.get("status_code", "")

    async def publish_container(self, ig_user_id: str, container_id: str) -> dict[str, Any]:
        """Step 2 of a reel publish."""
        return await self._send(
            "POST",
            f"/{ig_user_id}/media_publish",
            data={"creation_id": container_id},
        )

    async def publish_page_video(
        self, page_id: str, file_url: str, title: str, description: str = ""
    ) -> dict[str, Any]:
        """Publish a video to a Facebook Page from a hosted file URL."""
        return await self._send(
            "POST",
            f"/{page_id}/videos",
            data={"file_url": file_url, "title": title, "description": description},
        )

    # ── Insights ──

    async def get_insights(
        self,
        object_id: str,
        metrics: list[str],
        period: str | None = None,
        since: int | None = None,
        until: int | None = None,
    ) -> dict[str, list[dict[str, Any]]]:
        """Fetch insights for a media, page or IG user; returns metric name -> values list."""
        params: dict[str, Any] = {"metric": ",".join(metrics)}
        if period:
            params["period"] = period
        if since is not None:
            params["since"] = since
        if until is not None:
            params["until"] = until
        raw = await self._send("GET", f"/{object_id}/insights", params=params)
        return {item["name"]: item.get("values", []) for item in raw.get("data", [])}


def first_value(values: list[dict[str, Any]], default: Any = 0) -> Any:
    return values[0].get("value", default) if values else default


def latest_value(values: list[dict[str, Any]], default: Any = 0) -> Any:
    return values[-1].get("value", default) if values else default
