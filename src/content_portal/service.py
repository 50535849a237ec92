"""Record Sync: orchestrates briefs, the automation client and the store.

Flow for script / image / sentiment briefs:
    validate -> build prompt -> trigger automation once -> persist a
    ``completed`` record. Automation failures propagate and nothing is
    persisted; the caller surfaces the error.

Flow for video briefs:
    validate -> trigger once -> persist ``completed`` when the automation
    says the video is ``ready``, ``processing`` otherwise (``failed`` when no
    videoId came back). A caller-level watcher (`watch_video`) then polls
    the video rendering service directly on an attempt budget and flips the
    record to ``completed`` once the render is ready. When the budget runs
    out the record simply stays ``processing``.

Record lifecycle:
    The only mutation after creation is ``processing -> completed`` on video
    records, touching ``result.videoStatus`` and ``status`` alone.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .automation import AutomationClient
from .config import DEFAULT_VIDEO_POLL_INTERVAL_MS, DEFAULT_VIDEO_POLL_MAX_ATTEMPTS
from .db import ContentStore, clamp_history_limit
from .errors import (
    RecordNotFoundError,
    RecordStateError,
    RequestValidationError,
    TransportError,
)
from .models.automation import AutomationPayload
from .models.content import (
    ContentKind,
    ContentRecord,
    ContentStatus,
    ImageBrief,
    NewContentRecord,
    ScriptBrief,
    SentimentBrief,
    VideoBrief,
    VideoConfig,
    VideoState,
    parse_brief,
)
from .prompts import image_prompt, script_prompt, sentiment_prompt, video_prompt
from .video_service import VideoServiceClient

logger = logging.getLogger(__name__)

__all__ = ["ContentService", "VideoWatchOutcome"]

_VIDEO_STATES = {s.value for s in VideoState}


@dataclass(frozen=True)
class VideoWatchOutcome:
    """Result of a caller-level video watch.

    `state` is ``ready``, ``error`` or ``processing`` (budget exhausted).
    `record` is the updated record when one was flipped to completed.
    """

    state: str
    attempts: int
    message: str
    record: Optional[ContentRecord] = None


class ContentService:
    def __init__(
        self,
        store: ContentStore,
        automation: AutomationClient,
        video_service: VideoServiceClient,
        *,
        video_poll_interval_ms: int = DEFAULT_VIDEO_POLL_INTERVAL_MS,
        video_poll_max_attempts: int = DEFAULT_VIDEO_POLL_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.automation = automation
        self.video_service = video_service
        self._video_poll_interval_ms = video_poll_interval_ms
        self._video_poll_max_attempts = video_poll_max_attempts
        self._sleep = sleep

    async def _generate(
        self, kind: ContentKind, prompt: str, metadata: Dict[str, Any]
    ) -> ContentRecord:
        response = await self.automation.trigger(AutomationPayload(type=kind.value, prompt=prompt))
        record = await self.store.create(
            NewContentRecord(
                kind=kind,
                prompt=prompt,
                metadata=metadata,
                result=response.result,
                task_id=response.task_id,
                status=ContentStatus.COMPLETED,
            )
        )
        logger.info("Stored %s record id=%s task_id=%s", kind.value, record.id, record.task_id)
        return record

    async def generate_script(self, data: Any) -> ContentRecord:
        brief = parse_brief(ScriptBrief, data)
        return await self._generate(ContentKind.SCRIPT, script_prompt(brief), {"tone": brief.tone})

    async def generate_image(self, data: Any) -> ContentRecord:
        brief = parse_brief(ImageBrief, data)
        return await self._generate(ContentKind.IMAGE, image_prompt(brief), {"goals": brief.goals})

    async def analyze_sentiment(self, data: Any) -> ContentRecord:
        brief = parse_brief(SentimentBrief, data)
        return await self._generate(ContentKind.SENTIMENT, sentiment_prompt(brief), {})

    async def generate_video(self, data: Any) -> ContentRecord:
        brief = parse_brief(VideoBrief, data)
        config = brief.config or VideoConfig()
        prompt = video_prompt(brief.scenes)
        response = await self.automation.trigger(
            AutomationPayload(
                type=ContentKind.VIDEO.value,
                prompt=prompt,
                scenes=brief.scenes,
                config=config.model_dump(),
            )
        )
        video_id = response.result.get("videoId")
        video_status = response.result.get("videoStatus") or VideoState.PROCESSING.value
        logger.info("Video response video_id=%s video_status=%s", video_id, video_status)

        error: Optional[str] = None
        if not video_id:
            status = ContentStatus.FAILED
            error = "automation returned no videoId"
        elif video_status == VideoState.READY.value:
            status = ContentStatus.COMPLETED
        else:
            status = ContentStatus.PROCESSING

        record = await self.store.create(
            NewContentRecord(
                kind=ContentKind.VIDEO,
                prompt=prompt,
                metadata={
                    "scenes": [scene.model_dump() for scene in brief.scenes],
                    "config": config.model_dump(),
                },
                result={"videoId": video_id, "videoStatus": video_status},
                task_id=response.task_id,
                status=status,
                error=error,
            )
        )
        logger.info("Stored video record id=%s status=%s", record.id, record.status.value)
        return record

    async def video_status(self, video_id: str) -> Dict[str, Any]:
        if not video_id:
            raise RequestValidationError("videoId is required")
        return await self.video_service.status(video_id)

    async def download_video(self, video_id: str) -> bytes:
        if not video_id:
            raise RequestValidationError("videoId is required")
        return await self.video_service.download(video_id)

    async def mark_video_status(self, record_id: str, video_status: str) -> ContentRecord:
        """Apply a video status report to a stored video record.

        ``ready`` moves a processing record to completed; other statuses only
        refresh ``result.videoStatus`` while the record is still processing.
        Reporting ``ready`` for an already completed record is a no-op. The
        write is conditional on the record still being processing, so two
        concurrent reports cannot leave a completed record with a stale
        ``videoStatus``.

        Raises:
            RequestValidationError: missing id/status or unknown status value.
            RecordNotFoundError: no record with `record_id`.
            RecordStateError: not a video record, or a transition the
                lifecycle forbids.
        """
        if not record_id or not video_status:
            raise RequestValidationError("itemId and videoStatus are required")
        if video_status not in _VIDEO_STATES:
            raise RequestValidationError(
                f"videoStatus must be one of {', '.join(sorted(_VIDEO_STATES))}"
            )
        record = await self.store.get(record_id)
        if record is None:
            raise RecordNotFoundError("content item not found")
        if record.kind != ContentKind.VIDEO:
            raise RecordStateError("only video records accept status updates")

        ready = video_status == VideoState.READY.value
        if record.status == ContentStatus.COMPLETED:
            if ready:
                return record
            raise RecordStateError("video is already completed; its status cannot move back")
        if record.status != ContentStatus.PROCESSING:
            raise RecordStateError(f"video record is {record.status.value}; it cannot be updated")

        fields: Dict[str, Any] = {"status": ContentStatus.COMPLETED} if ready else {}
        try:
            updated = await self.store.update(
                record_id,
                fields,
                result_patch={"videoStatus": video_status},
                expected_status=ContentStatus.PROCESSING,
            )
        except RecordStateError:
            # another report completed the record between the read and the write
            current = await self.store.get(record_id)
            if ready and current is not None and current.status == ContentStatus.COMPLETED:
                return current
            raise
        if updated is None:
            raise RecordNotFoundError("content item not found")
        logger.info(
            "Video record id=%s videoStatus=%s status=%s",
            record_id,
            video_status,
            updated.status.value,
        )
        return updated

    async def watch_video(
        self,
        record_id: Optional[str],
        video_id: str,
        *,
        max_attempts: Optional[int] = None,
        interval_ms: Optional[int] = None,
    ) -> VideoWatchOutcome:
        """Poll the video service until the render settles or the budget ends.

        Failed status checks are logged and retried on the next attempt. A
        store failure while recording the completion is raised to the caller.
        """
        attempts_budget = max_attempts or self._video_poll_max_attempts
        interval = (interval_ms or self._video_poll_interval_ms) / 1000.0
        for attempt in range(1, attempts_budget + 1):
            await self._sleep(interval)
            try:
                data = await self.video_status(video_id)
            except TransportError as e:
                logger.warning("Video %s status check %d failed: %s", video_id, attempt, e)
                continue
            state = data.get("status")
            if state == VideoState.READY.value:
                record = (
                    await self.mark_video_status(record_id, VideoState.READY.value)
                    if record_id
                    else None
                )
                return VideoWatchOutcome(
                    state="ready",
                    attempts=attempt,
                    message="video generated successfully",
                    record=record,
                )
            if state == VideoState.ERROR.value:
                return VideoWatchOutcome(
                    state="error", attempts=attempt, message="video generation failed"
                )
        return VideoWatchOutcome(
            state="processing",
            attempts=attempts_budget,
            message="timed out waiting; the video may still be processing in the background",
        )

    async def recent(self, limit: Any = None) -> List[ContentRecord]:
        return await self.store.list_recent(clamp_history_limit(limit))
