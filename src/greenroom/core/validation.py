"""Identifier validation helpers."""

import re

JOB_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_valid_job_id(job_id: str) -> bool:
    """Return True if job_id is safe to embed in a file name.

    Accepts 1-64 characters from [A-Za-z0-9_-]. Generated uuid4 strings
    always qualify.
    """
    return bool(JOB_ID_PATTERN.fullmatch(job_id))
