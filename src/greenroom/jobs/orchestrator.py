"""Job orchestration.

JobOrchestrator owns the lifecycle of every job: it stages the upload,
registers the record, runs the background conversion task and serves status
and one-shot artifact retrieval. It is the only writer of status,
result_path and error; progress monitors only raise progress.

Lifecycle of one job:
    created (progress 5)
    -> detecting color (progress 20, optional)
    -> encoding (progress 30 + detected_color, monitor raises to <= 99)
    -> complete (100) | failed
The staged input is removed when the job ends, whatever the outcome.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from greenroom.color.sampler import ColorSampler, sample_background_color
from greenroom.core.validation import is_valid_job_id
from greenroom.exceptions import ToolNotFoundError
from greenroom.executor.encode import WebmEncoder
from greenroom.introspector.ffprobe import FFprobeIntrospector
from greenroom.introspector.interface import MediaInfo, MediaIntrospectionError
from greenroom.jobs.exceptions import (
    ArtifactReadError,
    InvalidJobIdError,
    JobExistsError,
    JobStoreError,
    UploadTooLargeError,
)
from greenroom.jobs.models import (
    PROGRESS_DETECTING,
    PROGRESS_ENCODING,
    ConversionOptions,
    JobRecord,
    JobStatus,
)
from greenroom.jobs.progress import create_progress_monitor
from greenroom.jobs.store import JobStore
from greenroom.logging.context import job_context

if TYPE_CHECKING:
    from greenroom.config.models import GreenroomConfig

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 1.0


class RetrievalStatus(Enum):
    """Outcome of an artifact retrieval."""

    NOT_FOUND = "not_found"
    NOT_READY = "not_ready"
    READY = "ready"


@dataclass(frozen=True)
class Retrieval:
    """Result of JobOrchestrator.retrieve().

    record is set for NOT_READY and READY; data only for READY.
    """

    status: RetrievalStatus
    record: JobRecord | None = None
    data: bytes | None = None


def _remove_file(path: Path, what: str) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s %s: %s", what, path, e)


def _open_exclusive(path: Path) -> BinaryIO:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path.open("xb")


class JobOrchestrator:
    """Runs conversion jobs in background asyncio tasks.

    Jobs are never cancelled: once accepted, a job runs until its encode
    finishes. Tasks are referenced until done so they can be drained on
    shutdown.
    """

    def __init__(
        self,
        config: GreenroomConfig,
        store: JobStore | None = None,
        encoder: WebmEncoder | None = None,
        sampler: ColorSampler | None = None,
        introspector: FFprobeIntrospector | None = None,
    ) -> None:
        self._config = config
        self._storage = config.storage
        self._store = store or JobStore(config.storage.jobs_dir)
        self._encoder = encoder or WebmEncoder(config.encoder, config.tools.ffmpeg)
        self._sampler = sampler or ColorSampler(
            config.tools.ffmpeg, config.tools.ffprobe
        )
        self._introspector = introspector
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def active_jobs(self) -> int:
        """Number of jobs whose background task is still running."""
        return sum(1 for task in self._tasks if not task.done())

    def input_path(self, job_id: str) -> Path:
        return self._storage.inputs_dir / f"input_{job_id}.tmp"

    def result_path(self, job_id: str) -> Path:
        return self._storage.results_dir / f"{job_id}.webm"

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def new_job_id(self, requested: str | None = None) -> str:
        """Return the job id to use for a submission.

        Args:
            requested: Caller-supplied id, or None/empty to generate a uuid4.

        Raises:
            InvalidJobIdError: If the requested id is not 1-64 characters
                from [A-Za-z0-9_-].
        """
        if not requested:
            return str(uuid.uuid4())
        if not is_valid_job_id(requested):
            raise InvalidJobIdError(
                "Job id must be 1-64 characters from [A-Za-z0-9_-]"
            )
        return requested

    async def stage_input(self, job_id: str, chunks: AsyncIterable[bytes]) -> Path:
        """Stream upload bytes into the job's transient input file.

        Raises:
            JobExistsError: If the job id is already in use.
            UploadTooLargeError: If the upload exceeds max_upload_bytes. The
                partial file is removed.
            JobStoreError: If the file cannot be written.
        """
        if await asyncio.to_thread(self._store.load, job_id) is not None:
            raise JobExistsError(job_id)

        limit = self._config.server.max_upload_bytes
        path = self.input_path(job_id)
        written = 0
        try:
            f = await asyncio.to_thread(_open_exclusive, path)
            try:
                async for chunk in chunks:
                    written += len(chunk)
                    if written > limit:
                        raise UploadTooLargeError(limit)
                    await asyncio.to_thread(f.write, chunk)
            except Exception:
                f.close()
                await asyncio.to_thread(_remove_file, path, "partial input")
                raise
            except BaseException:
                # Cancelled: clean up without awaiting
                f.close()
                _remove_file(path, "partial input")
                raise
            await asyncio.to_thread(f.close)
        except FileExistsError as e:
            raise JobExistsError(job_id) from e
        except OSError as e:
            raise JobStoreError(
                job_id, f"Cannot stage input for job {job_id}: {e}"
            ) from e

        logger.debug("Staged %d bytes for job %s", written, job_id)
        return path

    async def discard_input(self, job_id: str) -> None:
        """Remove a staged input that will not be accepted."""
        await asyncio.to_thread(_remove_file, self.input_path(job_id), "input")

    async def accept(self, job_id: str, options: ConversionOptions) -> JobRecord:
        """Register a staged job and start its background task.

        Raises:
            JobStoreError: If the record cannot be created. The staged input
                is removed.
        """
        record = JobRecord.new(job_id)
        try:
            await asyncio.to_thread(self._store.create, record)
        except JobStoreError:
            await self.discard_input(job_id)
            raise

        task = asyncio.create_task(
            self.process(job_id, options), name=f"job-{job_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._handle_task_result)
        logger.info(
            "Accepted job %s (quality=%d, audio_bitrate=%s, detect_background=%s)",
            job_id,
            options.quality,
            options.audio_bitrate,
            options.detect_background,
        )
        return record

    async def submit(
        self,
        chunks: AsyncIterable[bytes],
        options: ConversionOptions,
        job_id: str | None = None,
    ) -> JobRecord:
        """Stage an upload and accept it as a new job."""
        job_id = self.new_job_id(job_id)
        await self.stage_input(job_id, chunks)
        return await self.accept(job_id, options)

    def _handle_task_result(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Job task %s failed: %s", task.get_name(), exc, exc_info=exc)

    # ------------------------------------------------------------------
    # Background processing
    # ------------------------------------------------------------------

    async def process(self, job_id: str, options: ConversionOptions) -> None:
        """Run one job to a terminal state, then remove its staged input."""
        input_path = self.input_path(job_id)
        output_path = self.result_path(job_id)

        with job_context(job_id):
            try:
                await self._convert(job_id, options, input_path, output_path)
            except Exception as e:
                logger.exception("Unexpected error while processing job %s", job_id)
                error = f"Internal error: {e}"
                await self._update(
                    job_id, lambda r: None if r.is_terminal else r.failed(error)
                )
                await asyncio.to_thread(_remove_file, output_path, "partial output")
            finally:
                await asyncio.to_thread(_remove_file, input_path, "input")

    async def _convert(
        self,
        job_id: str,
        options: ConversionOptions,
        input_path: Path,
        output_path: Path,
    ) -> None:
        color: str | None = None
        if options.detect_background:
            await self._update(job_id, lambda r: r.with_progress(PROGRESS_DETECTING))
            # One ffprobe run serves both detection and the progress estimate
            info = await asyncio.to_thread(self._media_info, input_path)
            color = await asyncio.to_thread(
                sample_background_color, self._sampler, input_path, info
            )
            duration = (info.duration if info else None) or DEFAULT_DURATION
        else:
            duration = await asyncio.to_thread(self._get_duration, input_path)

        await self._update(
            job_id,
            lambda r: r.with_progress(PROGRESS_ENCODING).with_detected_color(color),
        )

        monitor = create_progress_monitor(
            self._config.progress, self._store, job_id, duration
        )
        await asyncio.to_thread(output_path.parent.mkdir, parents=True, exist_ok=True)
        watch_task = asyncio.create_task(monitor.watch(output_path))

        logger.info("Encoding job %s (%s monitor)", job_id, monitor.strategy)
        try:
            result = await asyncio.to_thread(
                self._encoder.encode,
                input_path,
                output_path,
                options,
                monitor.feed if monitor.wants_stream else None,
            )
        finally:
            monitor.stop()
            (watch_result,) = await asyncio.gather(watch_task, return_exceptions=True)
            if isinstance(watch_result, Exception):
                logger.warning(
                    "Progress monitor for job %s failed: %s", job_id, watch_result
                )

        if result.success:
            result_path = str(output_path)
            await self._update(
                job_id, lambda r: None if r.is_terminal else r.completed(result_path)
            )
            logger.info("Job %s complete", job_id)
        else:
            error = result.error or "Conversion failed"
            await self._update(
                job_id, lambda r: None if r.is_terminal else r.failed(error)
            )
            await asyncio.to_thread(_remove_file, output_path, "partial output")
            logger.warning("Job %s failed: %s", job_id, error)

    def _get_introspector(self) -> FFprobeIntrospector | None:
        if self._introspector is None:
            try:
                self._introspector = FFprobeIntrospector(self._config.tools.ffprobe)
            except ToolNotFoundError as e:
                logger.debug("Cannot inspect media: %s", e)
                return None
        return self._introspector

    def _get_duration(self, path: Path) -> float:
        introspector = self._get_introspector()
        if introspector is None:
            return DEFAULT_DURATION
        return introspector.get_duration(path, default=DEFAULT_DURATION)

    def _media_info(self, path: Path) -> MediaInfo | None:
        """Media info for path, or None when ffprobe is missing or fails."""
        introspector = self._get_introspector()
        if introspector is None:
            return None
        try:
            return introspector.get_media_info(path)
        except (MediaIntrospectionError, ToolNotFoundError) as e:
            logger.warning("Cannot read media info for %s: %s", path, e)
            return None

    async def _update(
        self, job_id: str, mutate: Callable[[JobRecord], JobRecord | None]
    ) -> JobRecord | None:
        """Apply a record transition, logging instead of raising store errors."""
        try:
            record = await asyncio.to_thread(self._store.update, job_id, mutate)
        except JobStoreError as e:
            logger.error("Could not update record for job %s: %s", job_id, e)
            return None
        if record is None:
            logger.warning("Record for job %s disappeared during processing", job_id)
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, job_id: str) -> JobRecord | None:
        """Current record, or None if the job is unknown."""
        return self._store.load(job_id)

    async def retrieve(self, job_id: str) -> Retrieval:
        """Hand out a finished artifact exactly once.

        A READY retrieval deletes the job record and the artifact, so every
        later retrieval reports NOT_FOUND.

        Raises:
            ArtifactReadError: If the record is complete but the artifact
                cannot be read. The job is left untouched.
        """
        record = await asyncio.to_thread(self._store.load, job_id)
        if record is None:
            return Retrieval(RetrievalStatus.NOT_FOUND)
        if record.status is not JobStatus.COMPLETE or not record.result_path:
            return Retrieval(RetrievalStatus.NOT_READY, record=record)

        artifact = Path(record.result_path)
        try:
            data = await asyncio.to_thread(artifact.read_bytes)
        except OSError as e:
            if await asyncio.to_thread(self._store.load, job_id) is None:
                # Retrieved by a concurrent caller while we were reading
                return Retrieval(RetrievalStatus.NOT_FOUND)
            raise ArtifactReadError(
                f"Cannot read result for job {job_id}: {e}"
            ) from e

        if not await asyncio.to_thread(self._store.delete, job_id):
            # Another retrieval won the race
            return Retrieval(RetrievalStatus.NOT_FOUND)
        await asyncio.to_thread(_remove_file, artifact, "result")
        logger.info("Job %s retrieved (%d bytes)", job_id, len(data))
        return Retrieval(RetrievalStatus.READY, record=record, data=data)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def drain(self, timeout: float) -> bool:
        """Wait up to timeout seconds for running jobs to finish.

        Returns:
            True if no job is still running.
        """
        pending = {task for task in self._tasks if not task.done()}
        if not pending:
            return True

        logger.info("Waiting for %d running job(s) to finish", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(
                "%d job(s) still running after %.0fs", len(still_running), timeout
            )
            return False
        return True
