"""Protocol-level types for talking to the n8n automation webhook.

None of these are persisted. A parsed, unwrapped webhook body is read once
into either a `StatusEnvelope` (a mapping whose ``status`` is a string) or a
`RawResult` (anything else); `classify` then turns it into one outcome:

    Completed    result ready (normalized), optional task id
    VideoStatus  video render accepted: ``ready`` or ``processing``
    Failed       explicit ``status: "error"``
    Pending      anything else; the task id is needed to keep polling
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from ..normalization import normalize_result, unwrap_result_payload
from .content import VideoScene

DEFAULT_ERROR_MESSAGE = "automation error"

VIDEO_STATES = ("ready", "processing")


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


@dataclass(frozen=True)
class StatusEnvelope:
    status: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def task_id(self) -> Optional[str]:
        value = self.raw.get("taskId")
        return str(value) if value else None

    @property
    def video_id(self) -> Optional[str]:
        value = self.raw.get("videoId")
        return str(value) if value else None

    @property
    def message(self) -> Optional[str]:
        return _text(self.raw.get("message"))

    @property
    def error(self) -> Optional[str]:
        return _text(self.raw.get("error"))

    @property
    def result(self) -> Any:
        """The ``result`` field, or the whole envelope when it is absent/null."""
        value = self.raw.get("result")
        return self.raw if value is None else value


@dataclass(frozen=True)
class RawResult:
    payload: Any


def read_envelope(value: Any) -> Union[StatusEnvelope, RawResult]:
    """Single discriminant check: a mapping with a string ``status`` field."""
    if isinstance(value, dict) and isinstance(value.get("status"), str):
        return StatusEnvelope(status=value["status"], raw=value)
    return RawResult(payload=value)


@dataclass(frozen=True)
class Completed:
    result: Dict[str, Any]
    task_id: Optional[str] = None


@dataclass(frozen=True)
class VideoStatus:
    video_id: Optional[str]
    status: str

    def as_result(self) -> Dict[str, Any]:
        return {"videoId": self.video_id, "videoStatus": self.status}


@dataclass(frozen=True)
class Failed:
    message: str


@dataclass(frozen=True)
class Pending:
    task_id: Optional[str]


Outcome = Union[Completed, VideoStatus, Failed, Pending]


def _completed(payload: Any, task_id: Optional[str]) -> Completed:
    result = normalize_result(unwrap_result_payload(payload)) or {}
    return Completed(result=result, task_id=task_id)


def classify(value: Any) -> Outcome:
    """Classify an unwrapped webhook body into one protocol outcome."""
    envelope = read_envelope(value)
    if isinstance(envelope, RawResult):
        return _completed(envelope.payload, None)
    if envelope.status == "completed":
        return _completed(envelope.result, envelope.task_id)
    if envelope.status in VIDEO_STATES:
        return VideoStatus(video_id=envelope.video_id, status=envelope.status)
    if envelope.status == "error":
        return Failed(message=envelope.message or envelope.error or DEFAULT_ERROR_MESSAGE)
    return Pending(task_id=envelope.task_id)


class AutomationResult(BaseModel):
    """What the automation client hands back to callers on success."""

    status: str = "completed"
    result: Dict[str, Any]
    task_id: Optional[str] = None


class AutomationPayload(BaseModel):
    """JSON body POSTed to the webhook: ``{type, prompt, scenes?, config?}``."""

    model_config = ConfigDict(extra="forbid")

    type: str
    prompt: str
    scenes: Optional[List[VideoScene]] = None
    config: Optional[Dict[str, Any]] = None

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
