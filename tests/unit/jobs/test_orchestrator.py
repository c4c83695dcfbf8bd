"""Tests for JobOrchestrator with in-process fakes for the tools."""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from greenroom.color.sampler import ColorSamplingError
from greenroom.config.models import GreenroomConfig, ServerConfig
from greenroom.executor.encode import EncodeResult
from greenroom.introspector.ffprobe import FFprobeIntrospector
from greenroom.introspector.interface import MediaInfo, MediaIntrospectionError
from greenroom.jobs.exceptions import (
    ArtifactReadError,
    InvalidJobIdError,
    JobExistsError,
    JobStoreError,
    UploadTooLargeError,
)
from greenroom.jobs.models import ConversionOptions, JobRecord, JobStatus
from greenroom.jobs.orchestrator import JobOrchestrator, RetrievalStatus
from greenroom.jobs.store import JobStore
from greenroom.tools.ffmpeg_progress import FFmpegProgress


async def _chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


class Ticker:
    """Counts event loop turns while blocking work runs elsewhere."""

    def __init__(self, interval: float = 0.05) -> None:
        self.interval = interval
        self.ticks = 0

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.ticks += 1


class RecordingStore(JobStore):
    """JobStore that remembers every record it writes."""

    def __init__(self, jobs_dir: Path) -> None:
        super().__init__(jobs_dir)
        self.written: list[JobRecord] = []

    def _write(self, record: JobRecord) -> None:
        super()._write(record)
        self.written.append(record)


class FakeEncoder:
    """Stands in for WebmEncoder."""

    def __init__(
        self,
        result: EncodeResult | None = None,
        blocks: tuple[FFmpegProgress, ...] = (),
        delay: float = 0.0,
        exc: Exception | None = None,
    ) -> None:
        self.result = result or EncodeResult(success=True, return_code=0)
        self.blocks = blocks
        self.delay = delay
        self.exc = exc
        self.calls: list[tuple] = []

    def encode(self, input_path, output_path, options, progress_callback=None):
        self.calls.append((input_path, output_path, options, progress_callback))
        if self.exc is not None:
            raise self.exc
        output_path.write_bytes(b"partial")
        for block in self.blocks:
            if progress_callback is not None:
                progress_callback(block)
        time.sleep(self.delay)
        if self.result.success:
            output_path.write_bytes(b"\x1a\x45\xdf\xa3webm")
        return self.result


class FakeSampler:
    def __init__(self, color: str = "0x00B140", exc: Exception | None = None):
        self.color = color
        self.exc = exc
        self.paths: list[Path] = []
        self.infos: list[MediaInfo | None] = []

    def detect_color(self, path: Path, info: MediaInfo | None = None) -> str:
        self.paths.append(path)
        self.infos.append(info)
        if self.exc is not None:
            raise self.exc
        return self.color


@pytest.fixture
def introspector() -> MagicMock:
    mock = MagicMock(spec=FFprobeIntrospector)
    mock.get_duration.return_value = 10.0
    mock.get_media_info.return_value = MediaInfo(640, 360, 10.0)
    return mock


@pytest.fixture
def store(config: GreenroomConfig) -> RecordingStore:
    return RecordingStore(config.storage.jobs_dir)


def _orchestrator(config, store, introspector, encoder=None, sampler=None):
    return JobOrchestrator(
        config,
        store=store,
        encoder=encoder or FakeEncoder(),
        sampler=sampler or FakeSampler(),
        introspector=introspector,
    )


class TestNewJobId:
    def test_generates_uuid4(self, config: GreenroomConfig) -> None:
        job_id = JobOrchestrator(config).new_job_id()
        assert uuid.UUID(job_id).version == 4

    def test_accepts_requested_id(self, config: GreenroomConfig) -> None:
        assert JobOrchestrator(config).new_job_id("clip_01") == "clip_01"

    def test_empty_requested_id_generates(self, config: GreenroomConfig) -> None:
        assert JobOrchestrator(config).new_job_id("") != ""

    def test_rejects_unsafe_id(self, config: GreenroomConfig) -> None:
        with pytest.raises(InvalidJobIdError):
            JobOrchestrator(config).new_job_id("../../etc")


class TestStageInput:
    """Tests for streaming uploads to disk."""

    @pytest.mark.asyncio
    async def test_writes_chunks(self, config, store, introspector) -> None:
        orchestrator = _orchestrator(config, store, introspector)

        path = await orchestrator.stage_input("job-1", _chunks(b"abc", b"def"))

        assert path == config.storage.inputs_dir / "input_job-1.tmp"
        assert path.read_bytes() == b"abcdef"

    @pytest.mark.asyncio
    async def test_too_large_removes_partial(self, config, store, introspector) -> None:
        config.server = ServerConfig(max_upload_mb=1)
        orchestrator = _orchestrator(config, store, introspector)
        chunk = b"x" * (512 * 1024)

        with pytest.raises(UploadTooLargeError) as exc_info:
            await orchestrator.stage_input("job-1", _chunks(chunk, chunk, chunk))

        assert exc_info.value.limit_bytes == 1024 * 1024
        assert not orchestrator.input_path("job-1").exists()

    @pytest.mark.asyncio
    async def test_existing_record_conflicts(
        self, config, store, introspector
    ) -> None:
        store.create(JobRecord.new("job-1"))
        orchestrator = _orchestrator(config, store, introspector)

        with pytest.raises(JobExistsError):
            await orchestrator.stage_input("job-1", _chunks(b"abc"))

    @pytest.mark.asyncio
    async def test_existing_input_never_overwritten(
        self, config, store, introspector
    ) -> None:
        orchestrator = _orchestrator(config, store, introspector)
        await orchestrator.stage_input("job-1", _chunks(b"first"))

        with pytest.raises(JobExistsError):
            await orchestrator.stage_input("job-1", _chunks(b"second"))

        assert orchestrator.input_path("job-1").read_bytes() == b"first"

    @pytest.mark.asyncio
    async def test_slow_store_does_not_block_loop(self, config, introspector) -> None:
        class SlowStore(JobStore):
            def load(self, job_id: str) -> JobRecord | None:
                time.sleep(0.3)
                return super().load(job_id)

        store = SlowStore(config.storage.jobs_dir)
        orchestrator = _orchestrator(config, store, introspector)
        ticker = Ticker()
        ticking = asyncio.create_task(ticker.run())

        try:
            await orchestrator.stage_input("job-1", _chunks(b"abc"))
        finally:
            ticking.cancel()

        assert ticker.ticks >= 3
        assert orchestrator.input_path("job-1").read_bytes() == b"abc"


class TestProcessing:
    """Tests for the background conversion task."""

    @pytest.mark.asyncio
    async def test_successful_job(self, config, store, introspector) -> None:
        encoder = FakeEncoder()
        orchestrator = _orchestrator(config, store, introspector, encoder=encoder)

        record = await orchestrator.submit(
            _chunks(b"video"), ConversionOptions(quality=20), job_id="job-1"
        )
        assert record.status is JobStatus.PROCESSING
        assert record.progress == 5
        assert await orchestrator.drain(5.0)

        final = orchestrator.status("job-1")
        assert final is not None
        assert final.status is JobStatus.COMPLETE
        assert final.progress == 100
        assert final.result_path == str(orchestrator.result_path("job-1"))
        assert final.detected_color is None
        assert not orchestrator.input_path("job-1").exists()
        assert orchestrator.result_path("job-1").is_file()

        input_path, output_path, options, callback = encoder.calls[0]
        assert input_path == orchestrator.input_path("job-1")
        assert output_path == orchestrator.result_path("job-1")
        assert options.quality == 20
        assert callback is not None

    @pytest.mark.asyncio
    async def test_progress_sequence_with_detection(
        self, config, store, introspector
    ) -> None:
        """Progress passes 20 (detecting) and 30 (encoding) before 100."""
        blocks = (
            FFmpegProgress(out_time_us=2_500_000, progress="continue"),
            FFmpegProgress(out_time_us=7_500_000, progress="continue"),
            FFmpegProgress(out_time_us=10_000_000, progress="end"),
        )
        sampler = FakeSampler("0x10E050")
        orchestrator = _orchestrator(
            config,
            store,
            introspector,
            encoder=FakeEncoder(blocks=blocks),
            sampler=sampler,
        )

        await orchestrator.submit(
            _chunks(b"video"), ConversionOptions(detect_background=True), "job-1"
        )
        await orchestrator.drain(5.0)

        progress = [r.progress for r in store.written]
        assert progress == [5, 20, 30, 47, 82, 100]
        assert sampler.paths == [orchestrator.input_path("job-1")]
        final = orchestrator.status("job-1")
        assert final is not None
        assert final.detected_color == "0x10E050"

    @pytest.mark.asyncio
    async def test_detection_shares_media_info(
        self, config, store, introspector
    ) -> None:
        """ffprobe runs once; its result feeds both detection and progress."""
        sampler = FakeSampler()
        orchestrator = _orchestrator(config, store, introspector, sampler=sampler)

        await orchestrator.submit(
            _chunks(b"video"), ConversionOptions(detect_background=True), "job-1"
        )
        await orchestrator.drain(5.0)

        introspector.get_media_info.assert_called_once_with(
            orchestrator.input_path("job-1")
        )
        introspector.get_duration.assert_not_called()
        assert sampler.infos == [MediaInfo(640, 360, 10.0)]

    @pytest.mark.asyncio
    async def test_unreadable_media_info_uses_default_duration(
        self, config, store, introspector
    ) -> None:
        introspector.get_media_info.side_effect = MediaIntrospectionError("bad")
        blocks = (FFmpegProgress(out_time_us=500_000, progress="continue"),)
        sampler = FakeSampler()
        orchestrator = _orchestrator(
            config,
            store,
            introspector,
            encoder=FakeEncoder(blocks=blocks),
            sampler=sampler,
        )

        await orchestrator.submit(
            _chunks(b"video"), ConversionOptions(detect_background=True), "job-1"
        )
        await orchestrator.drain(5.0)

        assert sampler.infos == [None]
        # Half of the 1.0 s fallback duration
        assert 65 in [r.progress for r in store.written]
        final = orchestrator.status("job-1")
        assert final is not None
        assert final.status is JobStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_no_detection_skips_detecting_phase(
        self, config, store, introspector
    ) -> None:
        sampler = FakeSampler()
        orchestrator = _orchestrator(config, store, introspector, sampler=sampler)

        await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")
        await orchestrator.drain(5.0)

        assert 20 not in [r.progress for r in store.written]
        assert sampler.paths == []

    @pytest.mark.asyncio
    async def test_detection_failure_still_encodes(
        self, config, store, introspector
    ) -> None:
        sampler = FakeSampler(exc=ColorSamplingError("ffmpeg not found"))
        orchestrator = _orchestrator(config, store, introspector, sampler=sampler)

        await orchestrator.submit(
            _chunks(b"video"), ConversionOptions(detect_background=True), "job-1"
        )
        await orchestrator.drain(5.0)

        final = orchestrator.status("job-1")
        assert final is not None
        assert final.status is JobStatus.COMPLETE
        assert final.detected_color is None

    @pytest.mark.asyncio
    async def test_encode_failure(self, config, store, introspector) -> None:
        encoder = FakeEncoder(
            result=EncodeResult(
                success=False, return_code=1, error="ffmpeg exited with code 1"
            )
        )
        orchestrator = _orchestrator(config, store, introspector, encoder=encoder)

        await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")
        await orchestrator.drain(5.0)

        final = orchestrator.status("job-1")
        assert final is not None
        assert final.status is JobStatus.FAILED
        assert final.error == "ffmpeg exited with code 1"
        assert final.result_path is None
        assert not orchestrator.result_path("job-1").exists()
        assert not orchestrator.input_path("job-1").exists()

    @pytest.mark.asyncio
    async def test_unexpected_error_fails_job(
        self, config, store, introspector
    ) -> None:
        encoder = FakeEncoder(exc=RuntimeError("encoder exploded"))
        orchestrator = _orchestrator(config, store, introspector, encoder=encoder)

        await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")
        await orchestrator.drain(5.0)

        final = orchestrator.status("job-1")
        assert final is not None
        assert final.status is JobStatus.FAILED
        assert final.error == "Internal error: encoder exploded"
        assert not orchestrator.input_path("job-1").exists()

    @pytest.mark.asyncio
    async def test_size_strategy_skips_stream(
        self, config, store, introspector
    ) -> None:
        config.progress.strategy = "size"
        encoder = FakeEncoder(delay=0.2)
        orchestrator = _orchestrator(config, store, introspector, encoder=encoder)

        await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")
        await orchestrator.drain(5.0)

        assert encoder.calls[0][3] is None
        progress = [r.progress for r in store.written]
        assert progress == sorted(progress)
        assert progress[-1] == 100

    @pytest.mark.asyncio
    async def test_accept_store_failure_discards_input(
        self, config, introspector
    ) -> None:
        store = MagicMock(spec=JobStore)
        store.load.return_value = None
        store.create.side_effect = JobStoreError("job-1", "disk full")
        orchestrator = _orchestrator(config, store, introspector)

        with pytest.raises(JobStoreError):
            await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")

        assert not orchestrator.input_path("job-1").exists()
        assert orchestrator.active_jobs == 0


class TestRetrieve:
    """Tests for one-shot artifact retrieval."""

    @pytest.mark.asyncio
    async def test_unknown_job(self, config, store, introspector) -> None:
        orchestrator = _orchestrator(config, store, introspector)
        retrieval = await orchestrator.retrieve("missing")
        assert retrieval.status is RetrievalStatus.NOT_FOUND
        assert retrieval.record is None

    @pytest.mark.asyncio
    async def test_not_ready(self, config, store, introspector) -> None:
        store.create(JobRecord.new("job-1").with_progress(44))
        orchestrator = _orchestrator(config, store, introspector)

        retrieval = await orchestrator.retrieve("job-1")

        assert retrieval.status is RetrievalStatus.NOT_READY
        assert retrieval.record is not None
        assert retrieval.record.progress == 44
        assert store.load("job-1") is not None

    @pytest.mark.asyncio
    async def test_failed_job_not_ready(self, config, store, introspector) -> None:
        store.create(JobRecord.new("job-1").failed("boom"))
        orchestrator = _orchestrator(config, store, introspector)

        retrieval = await orchestrator.retrieve("job-1")

        assert retrieval.status is RetrievalStatus.NOT_READY

    @pytest.mark.asyncio
    async def test_ready_exactly_once(self, config, store, introspector) -> None:
        orchestrator = _orchestrator(config, store, introspector)
        await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")
        await orchestrator.drain(5.0)

        first = await orchestrator.retrieve("job-1")
        second = await orchestrator.retrieve("job-1")

        assert first.status is RetrievalStatus.READY
        assert first.data == b"\x1a\x45\xdf\xa3webm"
        assert second.status is RetrievalStatus.NOT_FOUND
        assert orchestrator.status("job-1") is None
        assert not orchestrator.result_path("job-1").exists()

    @pytest.mark.asyncio
    async def test_concurrent_retrievals(self, config, store, introspector) -> None:
        orchestrator = _orchestrator(config, store, introspector)
        await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")
        await orchestrator.drain(5.0)

        results = await asyncio.gather(
            *(orchestrator.retrieve("job-1") for _ in range(5))
        )

        statuses = [r.status for r in results]
        assert statuses.count(RetrievalStatus.READY) == 1

    @pytest.mark.asyncio
    async def test_unreadable_artifact(self, config, store, introspector) -> None:
        result_path = config.storage.results_dir / "job-1.webm"
        store.create(JobRecord.new("job-1").completed(str(result_path)))
        orchestrator = _orchestrator(config, store, introspector)

        with pytest.raises(ArtifactReadError):
            await orchestrator.retrieve("job-1")

        assert store.load("job-1") is not None

    @pytest.mark.asyncio
    async def test_contended_record_does_not_block_loop(
        self, config, store, introspector
    ) -> None:
        """A worker thread holding the job's lock delays only this retrieval."""
        result_path = config.storage.results_dir / "job-1.webm"
        result_path.parent.mkdir(parents=True, exist_ok=True)
        result_path.write_bytes(b"webm")
        store.create(JobRecord.new("job-1").completed(str(result_path)))
        orchestrator = _orchestrator(config, store, introspector)

        held = threading.Event()

        def hold_lock() -> None:
            with store._lock_for("job-1"):
                held.set()
                time.sleep(0.5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        await asyncio.to_thread(held.wait, 2.0)

        ticker = Ticker()
        ticking = asyncio.create_task(ticker.run())
        try:
            retrieval = await orchestrator.retrieve("job-1")
        finally:
            ticking.cancel()
            holder.join()

        assert retrieval.status is RetrievalStatus.READY
        assert retrieval.data == b"webm"
        assert ticker.ticks >= 3


class TestDrain:
    @pytest.mark.asyncio
    async def test_nothing_running(self, config, store, introspector) -> None:
        assert await _orchestrator(config, store, introspector).drain(0.1)

    @pytest.mark.asyncio
    async def test_times_out(self, config, store, introspector) -> None:
        orchestrator = _orchestrator(
            config, store, introspector, encoder=FakeEncoder(delay=0.5)
        )
        await orchestrator.submit(_chunks(b"video"), ConversionOptions(), "job-1")

        assert orchestrator.active_jobs == 1
        assert not await orchestrator.drain(0.05)
        assert await orchestrator.drain(5.0)
        assert orchestrator.active_jobs == 0
