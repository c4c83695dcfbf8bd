"""Job context for structured logging.

A contextvar holds the id of the job whose background task is running.
asyncio copies the context into every task and into asyncio.to_thread
workers, so tool invocations made on behalf of a job log with its id too.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

_job_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "job_id", default=None
)


def get_job_context() -> str | None:
    """Return the id of the job currently being processed, if any."""
    return _job_id.get()


@contextmanager
def job_context(job_id: str) -> Generator[None, None, None]:
    """Context manager that tags log records with a job id.

    Example:
        with job_context("3f2a..."):
            logger.info("Encoding started")  # Includes job_id
    """
    token = _job_id.set(job_id)
    try:
        yield
    finally:
        _job_id.reset(token)


class JobContextFilter(logging.Filter):
    """Logging filter that injects the current job id into log records.

    Adds job_id for JSON output and job_tag ("[job 3f2a...] " or "") for
    the text format.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        job_id = _job_id.get()
        record.job_id = job_id
        record.job_tag = f"[job {job_id}] " if job_id else ""
        return True  # Never filter out records
