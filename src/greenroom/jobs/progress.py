"""Encode progress estimation.

Two interchangeable monitors translate an opaque ffmpeg run into a 30-99
progress estimate on the job record:

- StreamProgressMonitor reads ffmpeg's `-progress` blocks and maps
  out_time / duration into the encode range.
- SizeGrowthMonitor polls the output file and extrapolates from elapsed
  wall-clock time whenever the file grows.

Both never report 100, never lower the stored value, and stop writing once
the record is terminal. A failed sample is skipped.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from abc import ABC
from pathlib import Path
from typing import TYPE_CHECKING

from greenroom.jobs.exceptions import JobStoreError
from greenroom.jobs.models import PROGRESS_ENCODING, PROGRESS_MAX_RUNNING

if TYPE_CHECKING:
    from greenroom.config.models import ProgressConfig
    from greenroom.jobs.store import JobStore
    from greenroom.tools.ffmpeg_progress import FFmpegProgress

logger = logging.getLogger(__name__)

# Stream fraction is capped below 1.0 while ffmpeg is still running
MAX_STREAM_FRACTION = 0.99


def encode_phase_progress(fraction: float) -> int:
    """Map an encode fraction onto the 30-99 progress range."""
    fraction = max(0.0, fraction)
    span = 100 - PROGRESS_ENCODING
    return min(PROGRESS_MAX_RUNNING, PROGRESS_ENCODING + int(fraction * span))


class ProgressMonitor(ABC):
    """Base class for encode progress monitors.

    Subclasses override feed() to consume parsed ffmpeg progress blocks
    and/or watch() to observe the output file. The orchestrator calls both
    and then stop() once the encoder has exited.
    """

    strategy: str = ""

    # True if the encoder should emit -progress blocks for feed()
    wants_stream: bool = False

    def __init__(self, store: JobStore, job_id: str, duration: float) -> None:
        self._store = store
        self._job_id = job_id
        self._duration = duration if duration > 0 else 1.0
        self._last_progress = PROGRESS_ENCODING
        self._stopped = threading.Event()

    @property
    def job_id(self) -> str:
        return self._job_id

    @property
    def last_progress(self) -> int:
        """Highest progress value this monitor has observed on the record."""
        return self._last_progress

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        """Stop monitoring. Safe to call from any thread, more than once."""
        self._stopped.set()

    def feed(self, sample: FFmpegProgress) -> None:
        """Consume one ffmpeg progress block (ignored by default)."""

    async def watch(self, output_path: Path) -> None:
        """Observe the output file until stopped (returns at once by default)."""

    def _publish(self, progress: int) -> bool:
        """Write progress to the record if it raises the stored value.

        Returns:
            False if the record is gone or terminal; the monitor is then
            stopped. True otherwise, including after a failed write.
        """
        if self.stopped:
            return False
        progress = min(progress, PROGRESS_MAX_RUNNING)
        if progress <= self._last_progress:
            return True

        try:
            stored = self._store.update(
                self._job_id, lambda record: record.with_progress(progress)
            )
        except JobStoreError as e:
            logger.debug("Skipping progress sample for job %s: %s", self._job_id, e)
            return True

        if stored is None or stored.is_terminal:
            logger.debug("Job %s no longer processing, monitor stops", self._job_id)
            self.stop()
            return False

        self._last_progress = max(self._last_progress, stored.progress)
        return True


class StreamProgressMonitor(ProgressMonitor):
    """Progress from ffmpeg's structured `-progress pipe:1` output."""

    strategy = "stream"
    wants_stream = True

    def feed(self, sample: FFmpegProgress) -> None:
        if self.stopped:
            return
        if sample.is_end:
            self.stop()
            return

        try:
            fraction = sample.get_fraction(self._duration)
        except (TypeError, ValueError) as e:
            logger.debug("Unusable progress block for job %s: %s", self._job_id, e)
            return
        if fraction is None:
            return

        self._publish(encode_phase_progress(min(fraction, MAX_STREAM_FRACTION)))


class SizeGrowthMonitor(ProgressMonitor):
    """Progress extrapolated from output file growth.

    Every poll_interval the output size is sampled; on each change the
    elapsed time is compared with duration * encode_speed_ratio, the
    estimated wall time of the whole encode. The loop gives up after
    ceiling_seconds so it always terminates.
    """

    strategy = "size"

    def __init__(
        self,
        store: JobStore,
        job_id: str,
        duration: float,
        *,
        poll_interval: float = 2.0,
        ceiling_seconds: float = 120.0,
        encode_speed_ratio: float = 0.8,
    ) -> None:
        super().__init__(store, job_id, duration)
        self._poll_interval = poll_interval
        self._ceiling_seconds = ceiling_seconds
        self._estimated_seconds = self._duration * encode_speed_ratio
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None

    def stop(self) -> None:
        super().stop()
        if self._loop is not None and self._wakeup is not None:
            try:
                self._loop.call_soon_threadsafe(self._wakeup.set)
            except RuntimeError:
                # Event loop already closed
                pass

    def estimate(self, elapsed: float) -> int:
        """Progress for a given number of seconds since encoding started."""
        return encode_phase_progress(elapsed / self._estimated_seconds)

    async def watch(self, output_path: Path) -> None:
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        start = time.monotonic()
        last_size = 0

        while not self.stopped:
            try:
                await asyncio.wait_for(self._wakeup.wait(), self._poll_interval)
            except asyncio.TimeoutError:
                pass
            if self.stopped:
                break

            elapsed = time.monotonic() - start
            if elapsed >= self._ceiling_seconds:
                logger.debug(
                    "Size monitor for job %s reached %.0fs ceiling",
                    self._job_id,
                    self._ceiling_seconds,
                )
                break

            try:
                size = (await asyncio.to_thread(output_path.stat)).st_size
            except OSError as e:
                logger.debug("No output size for job %s yet: %s", self._job_id, e)
                continue

            if size <= last_size:
                continue
            last_size = size

            published = await asyncio.to_thread(self._publish, self.estimate(elapsed))
            if not published:
                break


def create_progress_monitor(
    config: ProgressConfig, store: JobStore, job_id: str, duration: float
) -> ProgressMonitor:
    """Build the monitor selected by config.strategy."""
    if config.strategy == SizeGrowthMonitor.strategy:
        return SizeGrowthMonitor(
            store,
            job_id,
            duration,
            poll_interval=config.poll_interval,
            ceiling_seconds=config.ceiling_seconds,
            encode_speed_ratio=config.encode_speed_ratio,
        )
    return StreamProgressMonitor(store, job_id, duration)
