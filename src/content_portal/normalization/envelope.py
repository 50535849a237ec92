"""Unwrapping of n8n item envelopes.

n8n "Respond to Webhook" nodes frequently return the raw item list:

    [{"json": {...}, "binary": {...}}, ...]

or a single item object ``{"json": {...}}``. Only the first item matters to
the portal. An empty list is passed through untouched; it is the "no items"
marker that ``unwrap_result_payload`` later turns into ``{"items": []}``.
"""
from __future__ import annotations

from typing import Any

__all__ = ["unwrap_envelope"]


def unwrap_envelope(raw: Any) -> Any:
    """Extract the real payload from n8n's envelope conventions.

    Args:
        raw: Parsed response body (any JSON-compatible value).

    Returns:
        The first item's ``json`` value, the first item itself, the ``json``
        value of a single item object, or ``raw`` unchanged.
    """
    if isinstance(raw, list):
        if not raw:
            return raw
        first = raw[0]
        if isinstance(first, dict) and "json" in first:
            return first["json"]
        return first
    if isinstance(raw, dict) and "json" in raw:
        return raw["json"]
    return raw
