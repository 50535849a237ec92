"""Error taxonomy shared by the automation client, store, service and API.

Every failure that reaches a boundary (HTTP route or CLI command) is a
`PortalError` carrying a single human-readable message plus an HTTP-equivalent
status code. The API layer renders them as ``{"error": message}``; the CLI
prints the message and exits non-zero.

Hierarchy:
    RequestValidationError   malformed / incomplete brief (400, never retried)
    RecordNotFoundError      update targeted an unknown record id (404)
    RecordStateError         forbidden status transition (409)
    ConfigurationError       required setting missing (500)
    PersistenceError         store unavailable or write failed (500)
    TransportError           unreachable endpoint or non-2xx response (502)
    AutomationError          explicit ``status: "error"`` from n8n (502)
    NormalizationError       result payload nested beyond the depth bound (502)
    AutomationTimeoutError   poll deadline exhausted (504)
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "PortalError",
    "RequestValidationError",
    "RecordNotFoundError",
    "RecordStateError",
    "ConfigurationError",
    "PersistenceError",
    "TransportError",
    "AutomationError",
    "NormalizationError",
    "AutomationTimeoutError",
]


class PortalError(Exception):
    status_code: int = 500

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RequestValidationError(PortalError):
    status_code = 400


class RecordNotFoundError(PortalError):
    status_code = 404


class RecordStateError(PortalError):
    status_code = 409


class ConfigurationError(PortalError):
    status_code = 500


class PersistenceError(PortalError):
    status_code = 500


class TransportError(PortalError):
    """Unreachable endpoint or non-success HTTP status.

    `http_status` is the upstream status code when a response was received,
    None when the request never completed.
    """

    status_code = 502

    def __init__(self, message: str, *, http_status: Optional[int] = None):
        super().__init__(message)
        self.http_status = http_status


class AutomationError(PortalError):
    status_code = 502


class NormalizationError(PortalError):
    status_code = 502


class AutomationTimeoutError(PortalError):
    """Poll budget exhausted; the task may still finish in the background."""

    status_code = 504
