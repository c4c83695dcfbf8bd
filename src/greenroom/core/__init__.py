"""Core utilities package.

Small helpers used across greenroom: subprocess invocation, schema-validated
JSON parsing and identifier validation.
"""

from greenroom.core.json_utils import (
    JsonParseResult,
    parse_json_with_schema,
)
from greenroom.core.subprocess_utils import run_command
from greenroom.core.validation import JOB_ID_PATTERN, is_valid_job_id

__all__ = [
    "JOB_ID_PATTERN",
    "JsonParseResult",
    "is_valid_job_id",
    "parse_json_with_schema",
    "run_command",
]
