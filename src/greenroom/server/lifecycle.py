"""Server start and shutdown bookkeeping.

The health endpoint reads uptime and shutdown state from here, the upload
handler refuses work once shutdown began, and the shutdown hook asks how
long it may still wait for running conversions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ServerLifecycle:
    """Uptime and graceful-shutdown state of one server process."""

    shutdown_timeout: float = 30.0
    started_at: datetime = field(default_factory=_utcnow)
    shutdown_requested_at: datetime | None = None

    @property
    def uptime_seconds(self) -> float:
        return (_utcnow() - self.started_at).total_seconds()

    @property
    def is_shutting_down(self) -> bool:
        return self.shutdown_requested_at is not None

    def initiate_shutdown(self) -> None:
        """Record the first shutdown request; later calls change nothing."""
        if self.shutdown_requested_at is None:
            self.shutdown_requested_at = _utcnow()

    def drain_budget(self) -> float:
        """Seconds left to wait for running jobs.

        The budget is counted from the shutdown request, so time spent
        between the signal and the shutdown hook is not granted twice.
        """
        if self.shutdown_requested_at is None:
            return self.shutdown_timeout
        spent = (_utcnow() - self.shutdown_requested_at).total_seconds()
        return max(0.0, self.shutdown_timeout - spent)
