"""API handlers for conversion jobs.

Endpoints:
    POST /upload - Submit a video for conversion (multipart form)
    GET /status/{job_id} - Current job status and progress
    GET /download/{job_id} - One-shot download of the finished WebM
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING

from aiohttp import BodyPartReader, web

from greenroom.jobs.exceptions import (
    ArtifactReadError,
    InvalidJobIdError,
    JobExistsError,
    JobStoreError,
    UploadTooLargeError,
)
from greenroom.jobs.models import ConversionOptions
from greenroom.jobs.orchestrator import RetrievalStatus
from greenroom.server.api.errors import (
    INTERNAL_ERROR,
    INVALID_ID_FORMAT,
    INVALID_REQUEST,
    MISSING_FILE,
    NOT_FOUND,
    NOT_READY,
    PAYLOAD_TOO_LARGE,
    RESOURCE_CONFLICT,
    SHUTTING_DOWN,
    api_error,
)

if TYPE_CHECKING:
    from greenroom.jobs.orchestrator import JobOrchestrator

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

JOB_ID_HEADER = "X-Job-Id"
DETECTED_COLOR_HEADER = "X-Detected-Color"
FILE_FIELD = "file"
OPTION_FIELDS = frozenset(
    {"quality", "crf", "audio_bitrate", "detect_background", "detect_green"}
)
UPLOAD_CHUNK_SIZE = 256 * 1024


def shutdown_check_middleware(handler: Handler) -> Handler:
    """Decorator that returns 503 instead of starting new work during shutdown."""

    async def wrapper(request: web.Request) -> web.StreamResponse:
        lifecycle = request.app.get("lifecycle")
        if lifecycle and lifecycle.is_shutting_down:
            return api_error(
                "Service is shutting down", code=SHUTTING_DOWN, status=503
            )
        return await handler(request)

    return wrapper


def _orchestrator(request: web.Request) -> JobOrchestrator:
    return request.app["orchestrator"]


async def _iter_part(part: BodyPartReader) -> AsyncIterator[bytes]:
    while True:
        chunk = await part.read_chunk(UPLOAD_CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


@shutdown_check_middleware
async def upload_handler(request: web.Request) -> web.Response:
    """Handle POST /upload.

    Multipart fields:
        file: The video to convert (required).
        quality | crf: Encoder CRF, clamped to 0-63 (default 30).
        audio_bitrate: Opus bitrate (default "128k").
        detect_background | detect_green: "true" to detect the chroma-key
            background color.

    An X-Job-Id header overrides the generated job id.

    Returns:
        JSON ``{"job_id", "status": "processing"}``; 400, 409, 413 or 500
        error responses.
    """
    orchestrator = _orchestrator(request)

    try:
        job_id = orchestrator.new_job_id(request.headers.get(JOB_ID_HEADER))
    except InvalidJobIdError as e:
        return api_error(str(e), code=INVALID_ID_FORMAT)

    if not request.content_type.startswith("multipart/"):
        return api_error("Expected a multipart/form-data body", code=INVALID_REQUEST)

    fields: dict[str, str] = {}
    staged = False
    try:
        reader = await request.multipart()
        async for part in reader:
            if not isinstance(part, BodyPartReader):
                continue
            if part.name == FILE_FIELD and not staged:
                await orchestrator.stage_input(job_id, _iter_part(part))
                staged = True
            elif part.name in OPTION_FIELDS:
                fields[part.name] = await part.text()
            else:
                await part.release()
    except UploadTooLargeError as e:
        return api_error(
            str(e),
            code=PAYLOAD_TOO_LARGE,
            status=413,
            details={"limit_bytes": e.limit_bytes},
        )
    except JobExistsError:
        return api_error(
            f"Job id {job_id} is already in use", code=RESOURCE_CONFLICT, status=409
        )
    except JobStoreError as e:
        logger.error("Cannot stage upload for job %s: %s", job_id, e)
        return api_error("Failed to save upload", code=INTERNAL_ERROR, status=500)
    except ValueError as e:
        if staged:
            await orchestrator.discard_input(job_id)
        return api_error(f"Malformed multipart body: {e}", code=INVALID_REQUEST)

    if not staged:
        return api_error("No file uploaded", code=MISSING_FILE)

    options = ConversionOptions.from_fields(fields)
    try:
        await orchestrator.accept(job_id, options)
    except JobExistsError:
        return api_error(
            f"Job id {job_id} is already in use", code=RESOURCE_CONFLICT, status=409
        )
    except JobStoreError as e:
        logger.error("Cannot register job %s: %s", job_id, e)
        return api_error("Failed to register job", code=INTERNAL_ERROR, status=500)

    return web.json_response({"job_id": job_id, "status": "processing"})


async def status_handler(request: web.Request) -> web.Response:
    """Handle GET /status/{job_id}.

    Returns:
        JSON ``{"status", "progress", "detected_color", "error"}`` or 404.
    """
    job_id = request.match_info["job_id"]
    record = await asyncio.to_thread(_orchestrator(request).status, job_id)
    if record is None:
        return api_error("Job not found", code=NOT_FOUND, status=404)

    return web.json_response(
        {
            "status": record.status.value,
            "progress": record.progress,
            "detected_color": record.detected_color,
            "error": record.error,
        }
    )


async def download_handler(request: web.Request) -> web.Response:
    """Handle GET /download/{job_id}.

    The artifact can be downloaded once; the job is forgotten afterwards.

    Returns:
        200 video/webm body (X-Detected-Color header when known), 404 for
        unknown jobs, 400 NOT_READY with status and progress otherwise.
    """
    job_id = request.match_info["job_id"]
    try:
        retrieval = await _orchestrator(request).retrieve(job_id)
    except ArtifactReadError as e:
        logger.error("Download of job %s failed: %s", job_id, e)
        return api_error("Failed to read video", code=INTERNAL_ERROR, status=500)

    if retrieval.status is RetrievalStatus.NOT_FOUND:
        return api_error("Job not found", code=NOT_FOUND, status=404)

    record = retrieval.record
    assert record is not None
    if retrieval.status is RetrievalStatus.NOT_READY:
        return api_error(
            "Video not ready",
            code=NOT_READY,
            details={"status": record.status.value, "progress": record.progress},
        )

    headers = {"Content-Disposition": f'attachment; filename="{job_id}.webm"'}
    if record.detected_color:
        headers[DETECTED_COLOR_HEADER] = record.detected_color
    return web.Response(body=retrieval.data, content_type="video/webm", headers=headers)


def setup_job_routes(app: web.Application) -> None:
    """Register job API routes with the application.

    Args:
        app: aiohttp Application to configure.
    """
    app.router.add_post("/upload", upload_handler)
    app.router.add_get("/status/{job_id}", status_handler)
    app.router.add_get("/download/{job_id}", download_handler)
