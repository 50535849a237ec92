"""Heuristic detection of base64 image payloads in result fields.

Detection Heuristics:
    - Any string starting with ``data:image`` is image data, whatever its length
    - Shorter than 100 characters: never image data (ordinary short text such
      as "positive" or an id would otherwise match the alphabet check)
    - Otherwise the string, with whitespace removed, must consist solely of
      the base64 alphabet ``[A-Za-z0-9+/=]``

Short images are deliberately missed; misclassifying a sentence-free token
as an image is the worse failure for the portal.
"""
from __future__ import annotations

import re
from typing import Any

__all__ = ["looks_like_image_b64", "MIN_BASE64_LEN"]

MIN_BASE64_LEN = 100

_BASE64_RE = re.compile(r"[A-Za-z0-9+/=]+")
_WHITESPACE_RE = re.compile(r"\s+")


def looks_like_image_b64(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    if value.startswith("data:image"):
        return True
    if len(value) < MIN_BASE64_LEN:
        return False
    sanitized = _WHITESPACE_RE.sub("", value)
    return bool(_BASE64_RE.fullmatch(sanitized))
