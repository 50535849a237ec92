"""Pydantic models and protocol types used across the portal."""
from __future__ import annotations

from .automation import AutomationPayload, AutomationResult
from .content import (
    ContentKind,
    ContentRecord,
    ContentStatus,
    NewContentRecord,
    VideoState,
)

__all__ = [
    "AutomationPayload",
    "AutomationResult",
    "ContentKind",
    "ContentRecord",
    "ContentStatus",
    "NewContentRecord",
    "VideoState",
]
