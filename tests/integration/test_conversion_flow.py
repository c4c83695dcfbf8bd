"""End-to-end conversion over HTTP with fake ffmpeg/ffprobe executables."""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import FormData
from aiohttp.test_utils import TestClient, TestServer

from greenroom.config.models import GreenroomConfig
from greenroom.jobs.models import JobRecord
from greenroom.jobs.orchestrator import JobOrchestrator
from greenroom.jobs.store import JobStore
from greenroom.server.app import create_app

pytestmark = pytest.mark.integration


class RecordingStore(JobStore):
    """JobStore that remembers every record it writes."""

    def __init__(self, jobs_dir: Path) -> None:
        super().__init__(jobs_dir)
        self.writes: list[JobRecord] = []

    def _write(self, record: JobRecord) -> None:
        super()._write(record)
        self.writes.append(record)

    def progress_of(self, job_id: str) -> list[int]:
        return [r.progress for r in self.writes if r.id == job_id]


def _form(content: bytes, **fields: str) -> FormData:
    data = FormData()
    data.add_field(
        "file", content, filename="clip.mov", content_type="video/quicktime"
    )
    for name, value in fields.items():
        data.add_field(name, value)
    return data


async def _wait_terminal(client: TestClient, job_id: str, timeout: float = 10.0):
    """Poll /status until the job leaves processing."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        resp = await client.get(f"/status/{job_id}")
        assert resp.status == 200
        body = await resp.json()
        if body["status"] != "processing":
            return body
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail(f"job {job_id} still processing after {timeout}s")
        await asyncio.sleep(0.05)


@pytest.fixture
def store(config: GreenroomConfig) -> RecordingStore:
    return RecordingStore(config.storage.jobs_dir)


async def _client_for(config: GreenroomConfig, store: RecordingStore):
    orchestrator = JobOrchestrator(config, store=store)
    client = TestClient(TestServer(create_app(config, orchestrator=orchestrator)))
    await client.start_server()
    return client


@pytest_asyncio.fixture
async def client(config: GreenroomConfig, store: RecordingStore):
    client = await _client_for(config, store)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def size_client(config: GreenroomConfig, store: RecordingStore):
    progress = dataclasses.replace(config.progress, strategy="size")
    client = await _client_for(dataclasses.replace(config, progress=progress), store)
    yield client
    await client.close()


class TestConversionFlow:
    """A job from upload to one-shot download."""

    @pytest.mark.asyncio
    async def test_detect_and_convert(
        self, client: TestClient, store: RecordingStore, make_media, config
    ) -> None:
        resp = await client.post(
            "/upload", data=_form(make_media(), detect_background="true")
        )
        assert resp.status == 200
        job_id = (await resp.json())["job_id"]

        final = await _wait_terminal(client, job_id)

        assert final == {
            "status": "complete",
            "progress": 100,
            "detected_color": "0x00B140",
            "error": None,
        }
        progress = store.progress_of(job_id)
        assert progress == sorted(progress)
        assert progress[:3] == [5, 20, 30]
        assert progress[-1] == 100

        download = await client.get(f"/download/{job_id}")
        assert download.status == 200
        assert download.content_type == "video/webm"
        assert download.headers["X-Detected-Color"] == "0x00B140"
        assert (await download.read()).startswith(b"\x1a\x45\xdf\xa3")

        again = await client.get(f"/download/{job_id}")
        assert again.status == 404
        assert (await client.get(f"/status/{job_id}")).status == 404
        assert not any(config.storage.inputs_dir.iterdir())
        assert not any(config.storage.results_dir.iterdir())

    @pytest.mark.asyncio
    async def test_status_while_encoding(
        self, client: TestClient, make_media
    ) -> None:
        media = make_media(encode_seconds=1.5, steps=6)
        resp = await client.post("/upload", data=_form(media))
        job_id = (await resp.json())["job_id"]

        await asyncio.sleep(0.6)
        status = await (await client.get(f"/status/{job_id}")).json()
        assert status["status"] == "processing"
        assert 0 < status["progress"] < 100

        early = await client.get(f"/download/{job_id}")
        assert early.status == 400
        assert (await early.json())["code"] == "NOT_READY"

        final = await _wait_terminal(client, job_id)
        assert final["status"] == "complete"
        assert final["detected_color"] is None

    @pytest.mark.asyncio
    async def test_size_strategy(
        self, size_client: TestClient, store: RecordingStore, make_media
    ) -> None:
        media = make_media(encode_seconds=0.6, steps=6)
        resp = await size_client.post("/upload", data=_form(media))
        job_id = (await resp.json())["job_id"]

        final = await _wait_terminal(size_client, job_id)

        assert final["status"] == "complete"
        progress = store.progress_of(job_id)
        assert progress == sorted(progress)
        assert progress[-1] == 100


class TestFailures:
    """Jobs and requests that do not produce a video."""

    @pytest.mark.asyncio
    async def test_undecodable_upload(
        self, client: TestClient, config: GreenroomConfig
    ) -> None:
        resp = await client.post("/upload", data=_form(b"\x00\x01 not a video"))
        job_id = (await resp.json())["job_id"]

        final = await _wait_terminal(client, job_id)

        assert final["status"] == "failed"
        assert "Invalid data found" in final["error"]
        assert final["progress"] < 100

        download = await client.get(f"/download/{job_id}")
        assert download.status == 400
        assert (await download.json())["details"]["status"] == "failed"
        assert not any(config.storage.inputs_dir.iterdir())
        assert not any(config.storage.results_dir.iterdir())

    @pytest.mark.asyncio
    async def test_encoder_failure(self, client: TestClient, make_media) -> None:
        resp = await client.post("/upload", data=_form(make_media(fail_encode=True)))
        job_id = (await resp.json())["job_id"]

        final = await _wait_terminal(client, job_id)

        assert final["status"] == "failed"
        assert "Conversion failed!" in final["error"]

    @pytest.mark.asyncio
    async def test_unknown_job(self, client: TestClient) -> None:
        assert (await client.get("/status/no-such-job")).status == 404
        assert (await client.get("/download/no-such-job")).status == 404
