"""Safe JSON utilities with consistent error handling.

Parsing functions return a JsonParseResult rather than raising, so callers
that treat bad documents as "absent" can do so explicitly.

Example usage:
    result = parse_json_with_schema(raw, JobRecordSchema, context=job_id)
    if result.success and result.value is not None:
        record = result.value
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JsonParseResult(Generic[T]):
    """Result of a JSON parsing operation.

    Attributes:
        success: True if parsing succeeded, False otherwise.
        value: The parsed value if successful, None otherwise.
        error: Error message if parsing failed, None otherwise.
    """

    success: bool
    value: T | None
    error: str | None = None


def _prefix(context: str) -> str:
    return f"{context}: " if context else ""


def parse_json_with_schema(
    raw: str | bytes | None,
    schema: type[M],
    *,
    context: str = "",
) -> JsonParseResult[M]:
    """Parse JSON and validate against a Pydantic schema.

    Args:
        raw: JSON document to parse.
        schema: Pydantic model class for validation.
        context: Context string for error messages.

    Returns:
        JsonParseResult with validated model instance or error information.
        If raw is None/empty, returns success with None value.
    """
    if raw is None or raw == "" or raw == b"":
        return JsonParseResult(success=True, value=None, error=None)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        error_msg = f"{_prefix(context)}Invalid JSON at position {e.pos}: {e.msg}"
        return JsonParseResult(success=False, value=None, error=error_msg)
    except (TypeError, UnicodeDecodeError) as e:
        error_msg = f"{_prefix(context)}Cannot decode JSON: {e}"
        return JsonParseResult(success=False, value=None, error=error_msg)

    try:
        validated = schema.model_validate(data)
    except ValidationError as e:
        error_msg = f"{_prefix(context)}Schema validation failed: {e}"
        return JsonParseResult(success=False, value=None, error=error_msg)

    return JsonParseResult(success=True, value=validated, error=None)

