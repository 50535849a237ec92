"""n8n automation webhook client with task polling.

The webhook may answer a brief in one of several ways:

1. Synchronously with the finished result (any JSON shape, a plain string or
   raw image bytes).
2. With a status envelope ``{"status": "completed", "result": ...}``.
3. For videos, with ``{"status": "ready" | "processing", "videoId": ...}``.
   The client never polls for videos; the status is handed back and the
   caller follows up against the video rendering service.
4. With ``{"status": "pending", "taskId": ...}``. The client then polls
   ``GET <webhook>?taskId=<id>`` every `poll_interval_ms` until the task
   completes, errors, or the wall-clock `poll_timeout_ms` budget runs out.
5. With ``{"status": "error", "message": ...}``.

Every failure aborts the whole call: `TransportError` for unreachable
endpoints and non-2xx statuses, `AutomationError` for explicit errors,
`AutomationTimeoutError` when the poll deadline passes. Polling is strictly
sequential, one outstanding HTTP call at a time, with suspending sleeps.
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import httpx

from .config import DEFAULT_POLL_INTERVAL_MS, DEFAULT_POLL_TIMEOUT_MS, Settings
from .errors import (
    AutomationError,
    AutomationTimeoutError,
    ConfigurationError,
    TransportError,
)
from .models.automation import (
    AutomationPayload,
    AutomationResult,
    Completed,
    Failed,
    Pending,
    VideoStatus,
    classify,
)
from .normalization import unwrap_envelope

logger = logging.getLogger(__name__)

__all__ = [
    "AutomationClient",
    "parse_response_payload",
]

DEFAULT_IMAGE_TYPE = "image/png"
_PREVIEW_LEN = 500


def _preview(value: Any) -> str:
    """Abbreviated JSON rendering for debug logs (image payloads are huge)."""
    try:
        text = json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = repr(value)
    if len(text) > _PREVIEW_LEN:
        return f"{text[:_PREVIEW_LEN]}... ({len(text)} chars)"
    return text


def parse_response_payload(response: httpx.Response) -> Any:
    """Decode a webhook response body according to its content type.

    - ``application/json`` / ``text/json``: parsed JSON
    - ``image/*`` / ``application/octet-stream``: ``{"imageData": <data URI>,
      "imageType": <content type>}``
    - anything else: JSON if the text parses, ``{"imageData": text}`` for a
      ``data:image`` string, otherwise ``{"output": text}``
    """
    content_type = response.headers.get("content-type", "")

    if "application/json" in content_type or "text/json" in content_type:
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"automation endpoint returned invalid JSON: {exc}",
                http_status=response.status_code,
            ) from exc

    if content_type.startswith("image/") or "application/octet-stream" in content_type:
        image_type = content_type or DEFAULT_IMAGE_TYPE
        encoded = base64.b64encode(response.content).decode("ascii")
        return {
            "imageData": f"data:{image_type};base64,{encoded}",
            "imageType": image_type,
        }

    text = response.text
    try:
        return json.loads(text)
    except ValueError:
        if text.startswith("data:image"):
            return {"imageData": text}
        return {"output": text}


class AutomationClient:
    """Sends briefs to the n8n webhook and resolves them to a final result.

    The underlying `httpx.AsyncClient` is created and owned by this object
    unless one is injected, in which case the caller keeps ownership.
    `sleep` and `clock` are injectable so polling can be driven without
    real waiting.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._webhook_url = webhook_url
        self._poll_interval = poll_interval_ms / 1000.0
        self._poll_timeout = poll_timeout_ms / 1000.0
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings, *, http_client: Optional[httpx.AsyncClient] = None
    ) -> "AutomationClient":
        return cls(
            settings.N8N_WEBHOOK_URL,
            poll_interval_ms=settings.N8N_POLL_INTERVAL_MS,
            poll_timeout_ms=settings.N8N_POLL_TIMEOUT_MS,
            timeout=settings.N8N_HTTP_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AutomationClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _request(self, method: str, url: Any, *, label: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{label} failed: {exc}") from exc
        if not response.is_success:
            raise TransportError(
                f"{label} error ({response.status_code})", http_status=response.status_code
            )
        return response

    async def trigger(self, payload: AutomationPayload) -> AutomationResult:
        """Send one brief and return its completed, normalized result.

        Raises:
            ConfigurationError: webhook URL not configured.
            TransportError: endpoint unreachable or non-2xx response.
            AutomationError: explicit error status, or a pending task without id.
            AutomationTimeoutError: poll deadline exhausted.
        """
        if not self._webhook_url:
            raise ConfigurationError("N8N_WEBHOOK_URL is not configured")

        logger.info("Triggering automation type=%s", payload.type)
        response = await self._request(
            "POST", self._webhook_url, label="webhook", json=payload.to_body()
        )
        raw = parse_response_payload(response)
        data = unwrap_envelope(raw)
        logger.debug("Webhook raw response: %s", _preview(raw))
        logger.debug("Webhook unwrapped payload: %s", _preview(data))

        outcome = classify(data)
        if isinstance(outcome, Completed):
            return AutomationResult(result=outcome.result, task_id=outcome.task_id)
        if isinstance(outcome, VideoStatus):
            logger.info("Video accepted video_id=%s status=%s", outcome.video_id, outcome.status)
            return AutomationResult(result=outcome.as_result())
        if isinstance(outcome, Failed):
            raise AutomationError(outcome.message)
        if not outcome.task_id:
            raise AutomationError("automation returned no task id to continue tracking")
        return await self._poll(outcome.task_id)

    async def _poll(self, task_id: str) -> AutomationResult:
        poll_url = httpx.URL(self._webhook_url).copy_set_param("taskId", task_id)
        started = self._clock()
        attempts = 0
        logger.info(
            "Polling task %s every %.1fs (timeout %.1fs)",
            task_id,
            self._poll_interval,
            self._poll_timeout,
        )
        while self._clock() - started < self._poll_timeout:
            await self._sleep(self._poll_interval)
            if self._clock() - started >= self._poll_timeout:
                break
            attempts += 1
            response = await self._request("GET", poll_url, label="status poll")
            data = unwrap_envelope(parse_response_payload(response))
            outcome = classify(data)
            if isinstance(outcome, Completed):
                logger.info("Task %s completed after %d poll(s)", task_id, attempts)
                return AutomationResult(result=outcome.result, task_id=outcome.task_id or task_id)
            if isinstance(outcome, Failed):
                raise AutomationError(outcome.message)
            logger.debug("Task %s still %s (attempt %d)", task_id, _status_of(outcome), attempts)
        raise AutomationTimeoutError("timed out waiting for automation response")


def _status_of(outcome: Any) -> str:
    if isinstance(outcome, VideoStatus):
        return outcome.status
    if isinstance(outcome, Pending):
        return "pending"
    return type(outcome).__name__.lower()
