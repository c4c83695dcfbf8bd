"""Structured logging module for greenroom.

Provides configurable logging with JSON format support and file rotation.
Log records emitted while a background job runs carry that job's id.
"""

from greenroom.logging.config import configure_logging
from greenroom.logging.context import (
    JobContextFilter,
    get_job_context,
    job_context,
)
from greenroom.logging.handlers import JSONFormatter

__all__ = [
    "JSONFormatter",
    "JobContextFilter",
    "configure_logging",
    "get_job_context",
    "job_context",
]
