"""Pure normalization helpers for n8n webhook responses.

n8n can answer a webhook call in many shapes: an item array whose entries
wrap the payload under ``json``, a bare object, a status envelope, a plain
string, or raw image bytes the client has already converted into a data URI.
This package reduces all of them to one canonical result mapping.

Modules:
    envelope: strip n8n's item/``json`` wrappers (``unwrap_envelope``)
    base64_detection: the "looks like image data" heuristic
    result_normalizer: ``unwrap_result_payload`` and ``normalize_result``

Guarantees:
    - No network calls or store writes
    - Deterministic and idempotent: normalizing a normalized result is a no-op
    - Unknown fields always pass through verbatim
"""
from __future__ import annotations

from .base64_detection import looks_like_image_b64
from .envelope import unwrap_envelope
from .result_normalizer import (
    describe_result,
    image_data_uri,
    normalize_result,
    unwrap_result_payload,
)

__all__ = [
    "describe_result",
    "image_data_uri",
    "looks_like_image_b64",
    "normalize_result",
    "unwrap_envelope",
    "unwrap_result_payload",
]
