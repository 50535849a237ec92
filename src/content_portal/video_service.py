"""Client for the short-video rendering service.

Two endpoints are used, both keyed by the ``videoId`` the automation
returned when it accepted a video brief:

    GET <base>/api/short-video/{videoId}/status -> {"status": "pending" | "processing" | "ready" | "error"}
    GET <base>/api/short-video/{videoId}        -> raw MP4 bytes

These calls bypass the automation webhook entirely.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .config import DEFAULT_VIDEO_SERVICE_URL, Settings
from .errors import TransportError

logger = logging.getLogger(__name__)

__all__ = ["VideoServiceClient", "download_filename"]

VIDEO_MIME_TYPE = "video/mp4"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def download_filename(video_id: str) -> str:
    """Attachment name for a video; characters outside ``[A-Za-z0-9_-]`` become ``_``."""
    safe_id = _UNSAFE_FILENAME_CHARS.sub("_", video_id)
    return f"video-{safe_id}.mp4"


class VideoServiceClient:
    def __init__(
        self,
        base_url: str = DEFAULT_VIDEO_SERVICE_URL,
        *,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls, settings: Settings, *, http_client: Optional[httpx.AsyncClient] = None
    ) -> "VideoServiceClient":
        return cls(
            settings.SHORT_VIDEO_MAKER_URL,
            timeout=settings.N8N_HTTP_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, video_id: str, suffix: str = "") -> str:
        return f"{self.base}/api/short-video/{quote(video_id, safe='')}{suffix}"

    async def _get(self, url: str, *, label: str) -> httpx.Response:
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as e:
            raise TransportError(f"{label} failed: {e}") from e
        if resp.status_code >= 400:
            raise TransportError(f"{label} error ({resp.status_code})", http_status=resp.status_code)
        return resp

    async def status(self, video_id: str) -> Dict[str, Any]:
        """Return the rendering status payload for `video_id`."""
        resp = await self._get(self._url(video_id, "/status"), label="video status check")
        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError(f"video status check returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise TransportError("video status check returned a non-object payload")
        logger.debug("Video %s status=%s", video_id, data.get("status"))
        return data

    async def download(self, video_id: str) -> bytes:
        """Fetch the rendered MP4 for `video_id`."""
        resp = await self._get(self._url(video_id), label="video download")
        logger.info("Downloaded video %s (%d bytes)", video_id, len(resp.content))
        return resp.content
