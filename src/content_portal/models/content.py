"""Pydantic models for content records and the briefs that create them.

`ContentRecord` is the persisted unit of work. Briefs are the validated
request bodies of the four generation flows; their constraints mirror what
the portal forms enforce so a malformed request is rejected before any
webhook call is made.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import RequestValidationError


class ContentKind(str, Enum):
    SCRIPT = "script"
    IMAGE = "image"
    VIDEO = "video"
    SENTIMENT = "sentiment"


class ContentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class VideoState(str, Enum):
    """Statuses reported by the video rendering service."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class NewContentRecord(BaseModel):
    """Fields supplied by the caller when creating a record."""

    kind: ContentKind
    prompt: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    result: Dict[str, Any] = Field(default_factory=dict)
    status: ContentStatus = ContentStatus.COMPLETED
    task_id: Optional[str] = None
    error: Optional[str] = None


class ContentRecord(NewContentRecord):
    """A stored record. `id`, `kind`, `prompt` and `metadata` never change.

    Serialized for API consumers with the portal's field names: ``type`` for
    the kind, camelCase timestamps and task id.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: ContentKind = Field(serialization_alias="type")
    task_id: Optional[str] = Field(default=None, serialization_alias="taskId")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --------------------------------------------------------------------------
# Briefs
# --------------------------------------------------------------------------


class ScriptBrief(BaseModel):
    topic: str = Field(min_length=10)
    tone: str = Field(min_length=3, max_length=50, description="Tone to apply to the script")


class ImageBrief(BaseModel):
    description: str = Field(min_length=10)
    goals: List[str] = Field(min_length=1)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator("goals", mode="before")
    @classmethod
    def coerce_goals(cls, v: Any) -> List[Any]:
        """Accept a single goal string as a one-item list; strip each goal."""
        if isinstance(v, list):
            return [g.strip() if isinstance(g, str) else g for g in v]
        if isinstance(v, str) and v:
            return [v.strip()]
        return []

    @field_validator("goals")
    @classmethod
    def goals_long_enough(cls, v: List[str]) -> List[str]:
        for goal in v:
            if len(goal) < 3:
                raise ValueError("each goal needs at least 3 characters")
        return v


class VideoScene(BaseModel):
    text: str = Field(min_length=5)
    searchTerms: List[str] = Field(min_length=1)


class VideoConfig(BaseModel):
    paddingBack: Union[int, float] = 1500
    music: str = "chill"
    voice: str = "af_heart"
    captionPosition: Literal["top", "center", "bottom"] = "bottom"
    captionBackgroundColor: str = "blue"
    orientation: Literal["portrait", "landscape"] = "portrait"


class VideoBrief(BaseModel):
    scenes: List[VideoScene] = Field(min_length=1)
    config: Optional[VideoConfig] = None


class SentimentBrief(BaseModel):
    text: str = Field(min_length=10)


BriefT = TypeVar("BriefT", bound=BaseModel)


def _format_errors(exc: ValidationError) -> str:
    parts: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return ". ".join(parts)


def parse_brief(model: Type[BriefT], data: Any) -> BriefT:
    """Validate `data` against a brief model.

    Raises:
        RequestValidationError: with every problem aggregated into one
            human-readable message (``field: message. field: message``).
    """
    if not isinstance(data, dict):
        raise RequestValidationError("request body must be a JSON object")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        message = _format_errors(exc) or f"incomplete data for {model.__name__}"
        raise RequestValidationError(message) from exc
