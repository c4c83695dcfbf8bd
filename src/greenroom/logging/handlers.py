"""JSON log formatting for log shippers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord carries, plus the ones added by formatting and
# by JobContextFilter. Anything else on a record came from `extra=`.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName", "job_id", "job_tag"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Keys: ``timestamp`` (UTC ISO-8601), ``level``, ``message``, ``logger``
    (absent for the root logger), ``context`` (job id and ``extra=``
    attributes, absent when empty) and ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }
        if record.name != "root":
            entry["logger"] = record.name

        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if getattr(record, "job_id", None):
            context["job_id"] = record.job_id
        if context:
            entry["context"] = context

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)
