"""Standardized API error response helper.

All error responses share one JSON shape:
- ``error``: Human-readable error message
- ``code``: Machine-readable error code string
- ``details`` (optional): Additional context for the error

Usage:
    from greenroom.server.api.errors import api_error, NOT_FOUND

    return api_error("Job not found", code=NOT_FOUND, status=404)
"""

from __future__ import annotations

from typing import Any

from aiohttp import web

# --- Error code constants ---

INVALID_REQUEST = "INVALID_REQUEST"
INVALID_ID_FORMAT = "INVALID_ID_FORMAT"
MISSING_FILE = "MISSING_FILE"
NOT_FOUND = "NOT_FOUND"
NOT_READY = "NOT_READY"
RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
INTERNAL_ERROR = "INTERNAL_ERROR"
SHUTTING_DOWN = "SHUTTING_DOWN"


def api_error(
    message: str,
    *,
    code: str,
    status: int = 400,
    details: Any = None,
) -> web.Response:
    """Create a standardized JSON error response.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (use constants from this module).
        status: HTTP status code (default 400).
        details: Optional additional context (string, list, or dict).

    Returns:
        aiohttp JSON response with ``{"error": ..., "code": ...}`` body.
    """
    body: dict[str, Any] = {"error": message, "code": code}
    if details is not None:
        body["details"] = details
    return web.json_response(body, status=status)
