"""HTTP application.

This module provides the aiohttp Application with the health check endpoint,
the job API routes and startup/shutdown hooks.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from aiohttp import web

from greenroom import __version__
from greenroom.jobs.orchestrator import JobOrchestrator
from greenroom.server.api import setup_job_routes
from greenroom.server.cleanup import cleanup_orphaned_files

if TYPE_CHECKING:
    from greenroom.config.models import GreenroomConfig
    from greenroom.server.lifecycle import ServerLifecycle

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    """Health check response payload."""

    status: str
    """Overall status: 'healthy' or 'unhealthy'."""

    version: str
    """greenroom version string."""

    uptime_seconds: float
    """Seconds since server startup."""

    active_jobs: int = 0
    """Number of conversions currently running."""

    shutting_down: bool = False
    """True if graceful shutdown is in progress."""

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def create_app(
    config: GreenroomConfig, orchestrator: JobOrchestrator | None = None
) -> web.Application:
    """Create and configure the aiohttp Application.

    Args:
        config: Effective configuration.
        orchestrator: Optional pre-built orchestrator (tests inject fakes).

    Returns:
        Configured aiohttp Application instance.
    """
    app = web.Application()

    app["config"] = config
    app["orchestrator"] = orchestrator or JobOrchestrator(config)
    app["lifecycle"] = None  # Will be set by serve command

    app.router.add_get("/health", health_handler)
    setup_job_routes(app)

    app.on_startup.append(_prepare_storage)
    app.on_shutdown.append(_drain_jobs)

    return app


async def _prepare_storage(app: web.Application) -> None:
    """Create the data directories and remove files orphaned by a crash."""
    config: GreenroomConfig = app["config"]
    orchestrator: JobOrchestrator = app["orchestrator"]

    await asyncio.to_thread(config.storage.ensure_dirs)
    cleaned = await asyncio.to_thread(
        cleanup_orphaned_files,
        config.storage,
        orchestrator.store,
        config.server.cleanup_max_age_hours,
    )
    if cleaned > 0:
        logger.info("Cleaned %d orphaned file(s) from previous runs", cleaned)
    logger.debug("Storage ready under %s", config.storage.data_dir)


async def _drain_jobs(app: web.Application) -> None:
    """Give running conversions up to shutdown_timeout to finish."""
    config: GreenroomConfig = app["config"]
    orchestrator: JobOrchestrator = app["orchestrator"]
    lifecycle: ServerLifecycle | None = app.get("lifecycle")

    timeout = config.server.shutdown_timeout
    if lifecycle is not None:
        lifecycle.initiate_shutdown()
        timeout = lifecycle.drain_budget()
    await orchestrator.drain(timeout)


async def health_handler(request: web.Request) -> web.Response:
    """Handle GET /health requests.

    Returns:
        200 with HealthStatus payload, or 503 while shutting down.
    """
    lifecycle: ServerLifecycle | None = request.app.get("lifecycle")
    orchestrator: JobOrchestrator = request.app["orchestrator"]

    shutting_down = lifecycle.is_shutting_down if lifecycle else False
    uptime = lifecycle.uptime_seconds if lifecycle else 0.0

    health = HealthStatus(
        status="unhealthy" if shutting_down else "healthy",
        version=__version__,
        uptime_seconds=round(uptime, 1),
        active_jobs=orchestrator.active_jobs,
        shutting_down=shutting_down,
    )

    http_status = 503 if shutting_down else 200
    return web.json_response(health.to_dict(), status=http_status)
