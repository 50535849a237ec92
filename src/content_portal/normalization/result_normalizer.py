"""Coerce unwrapped automation payloads into the canonical result mapping.

Canonical channels of a normalized result:
    text:      text / summary / description / output
    image:     imageData (data URI or raw base64) + imageMimeType
    sentiment: category / feelings / sentiment / score
    video:     videoId / videoStatus

Everything else passes through verbatim.

Normalization Steps (``normalize_result``):
    1. Flatten nested ``output`` mappings into the current level (nested keys
       win). Bounded by ``MAX_OUTPUT_DEPTH``; deeper (or cyclic) nesting
       raises ``NormalizationError``.
    2. A string ``output`` that looks like image data is copied to
       ``imageData`` (``output`` is kept).
    3. ``STRING_CANDIDATES`` are tried in order; the first image-looking
       string becomes ``imageData``.
    4. Only when ``imageData`` is still unset, ``OBJECT_CANDIDATES`` are tried:
       a mapping whose ``data`` looks like image data supplies ``imageData``
       and, failing the result's own mime fields, its mime type.
    5. ``imageMimeType`` falls back to ``imageType`` then ``contentType``.

Candidate tables are ordered ``(field, extractor)`` pairs evaluated with pure
extractors, so the priority order lives in data rather than in nested
conditionals.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ..errors import NormalizationError
from .base64_detection import looks_like_image_b64

__all__ = [
    "ImageCandidate",
    "MAX_OUTPUT_DEPTH",
    "OBJECT_CANDIDATES",
    "STRING_CANDIDATES",
    "describe_result",
    "image_data_uri",
    "normalize_result",
    "unwrap_result_payload",
]

MAX_OUTPUT_DEPTH = 20
DEFAULT_IMAGE_MIME = "image/png"

# (image data, mime type or None)
ImageMatch = Tuple[str, Optional[str]]


@dataclass(frozen=True)
class ImageCandidate:
    field: str
    extract: Callable[[Any], Optional[ImageMatch]]


def _first_present(source: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def _string_payload(value: Any) -> Optional[ImageMatch]:
    if looks_like_image_b64(value):
        return value, None
    return None


def _nested_data_payload(value: Any) -> Optional[ImageMatch]:
    """Match binary-style objects such as ``{"data": "<b64>", "mimeType": "image/png"}``."""
    if not isinstance(value, dict):
        return None
    data = value.get("data")
    if not looks_like_image_b64(data):
        return None
    return data, _first_present(value, ("contentType", "mimeType", "type"))


STRING_CANDIDATES: Tuple[ImageCandidate, ...] = tuple(
    ImageCandidate(field, _string_payload)
    for field in ("imageData", "imageBase64", "image", "data", "binary", "file")
)

OBJECT_CANDIDATES: Tuple[ImageCandidate, ...] = tuple(
    ImageCandidate(field, _nested_data_payload)
    for field in ("image", "data", "binary", "file")
)


def _first_match(
    current: Dict[str, Any], candidates: Sequence[ImageCandidate]
) -> Optional[ImageMatch]:
    for candidate in candidates:
        match = candidate.extract(current.get(candidate.field))
        if match is not None:
            return match
    return None


def unwrap_result_payload(payload: Any) -> Dict[str, Any]:
    """Wrap any completed-task payload into a result mapping.

    - list: ``[]`` -> ``{"items": []}``; first item carrying ``output`` ->
      that output (mapping) or ``{"output": output}``; else ``{"items": list}``
    - mapping: returned as-is
    - string: ``{"imageData": s}`` when it looks like image data, else
      ``{"output": s}``
    - anything else: ``{"value": payload}``
    """
    if isinstance(payload, list):
        if not payload:
            return {"items": []}
        first = payload[0]
        if isinstance(first, dict) and "output" in first:
            output = first["output"]
            if isinstance(output, dict):
                return output
            return {"output": output}
        return {"items": payload}
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, str):
        if looks_like_image_b64(payload):
            return {"imageData": payload}
        return {"output": payload}
    return {"value": payload}


def _flatten_output(current: Dict[str, Any]) -> Dict[str, Any]:
    depth = 0
    while isinstance(current.get("output"), dict):
        if depth >= MAX_OUTPUT_DEPTH:
            raise NormalizationError(
                f"result nests 'output' deeper than {MAX_OUTPUT_DEPTH} levels"
            )
        rest = dict(current)
        nested = rest.pop("output")
        current = {**rest, **nested}
        depth += 1
    return current


def normalize_result(payload: Any) -> Optional[Dict[str, Any]]:
    """Return the canonical result mapping for `payload` (None stays None).

    The input is never mutated; a shallow copy is normalized. Running the
    function on its own output returns an equal mapping.
    """
    if payload is None:
        return None
    if isinstance(payload, dict):
        current = dict(payload)
    else:
        current = dict(unwrap_result_payload(payload))

    current = _flatten_output(current)

    output = current.get("output")
    if isinstance(output, str) and looks_like_image_b64(output):
        current["imageData"] = output

    match = _first_match(current, STRING_CANDIDATES)
    if match is not None:
        current["imageData"] = match[0]

    if not current.get("imageData"):
        match = _first_match(current, OBJECT_CANDIDATES)
        if match is not None:
            data, nested_mime = match
            current["imageData"] = data
            mime = _first_present(current, ("imageMimeType", "imageType", "contentType"))
            if mime is None:
                mime = nested_mime
            if mime is not None:
                current["imageMimeType"] = mime

    if current.get("imageData") and not current.get("imageMimeType"):
        fallback = current.get("imageType") or current.get("contentType")
        if fallback:
            current["imageMimeType"] = fallback
    return current


def image_data_uri(result: Any) -> Optional[str]:
    """Resolve a displayable image source (data URI or URL) from a result."""
    normalized = normalize_result(result)
    if normalized is None:
        return None
    mime = (
        _first_present(normalized, ("imageMimeType", "imageType", "contentType"))
        or DEFAULT_IMAGE_MIME
    )
    for key in ("imageData", "imageBase64"):
        value = normalized.get(key)
        if isinstance(value, str) and value:
            if value.startswith("data:image"):
                return value
            return f"data:{mime};base64,{value}"
    url = normalized.get("imageUrl")
    if isinstance(url, str) and url:
        return url
    return None


def _nonempty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def describe_result(result: Any) -> Optional[str]:
    """Plain-text summary of a result, as shown in history listings.

    Image results yield only their caption (``text``/``description``);
    sentiment results render the category line; everything else falls back
    through the text channel to a JSON dump.
    """
    normalized = normalize_result(result)
    if normalized is None:
        return None

    if normalized.get("imageData") or normalized.get("imageUrl") or normalized.get("imageBase64"):
        return _nonempty_str(normalized.get("text")) or _nonempty_str(normalized.get("description"))

    text = normalized.get("text")
    output = normalized.get("output")
    category = normalized.get("category")
    if isinstance(category, str):
        feelings = _nonempty_str(normalized.get("feelings"))
        suffix = f" ({feelings})" if feelings else ""
        if isinstance(text, str):
            detail = f"\n{text}"
        elif isinstance(output, str):
            detail = f"\n{output}"
        else:
            detail = ""
        return f"Sentiment: {category}{suffix}{detail}"

    if isinstance(text, str):
        return text
    summary = normalized.get("summary")
    if isinstance(summary, str):
        return summary
    if isinstance(output, str) and not looks_like_image_b64(output):
        return output
    sentiment = normalized.get("sentiment")
    if sentiment:
        score = normalized.get("score")
        confidence = (
            f" (confidence {score * 100:.0f}%)"
            if isinstance(score, (int, float)) and not isinstance(score, bool)
            else ""
        )
        detail = f"\n{text}" if text else ""
        return f"Sentiment: {sentiment}{confidence}{detail}"

    return json.dumps(normalized, indent=2, ensure_ascii=False, default=str)
