"""CLI serve command.

Runs the conversion service as a long-lived HTTP server suitable for
systemd or container supervision.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from greenroom.cli.common import load_cli_config
from greenroom.cli.exit_codes import ExitCode
from greenroom.config.models import PROGRESS_STRATEGIES
from greenroom.tools.paths import find_tool

if TYPE_CHECKING:
    from greenroom.config.models import GreenroomConfig

logger = logging.getLogger(__name__)


async def run_server(config: GreenroomConfig) -> int:
    """Run the HTTP server until SIGTERM/SIGINT.

    Args:
        config: Effective configuration.

    Returns:
        Exit code (0 for clean shutdown, non-zero for errors).
    """
    from aiohttp import web

    from greenroom.server.app import create_app
    from greenroom.server.lifecycle import ServerLifecycle
    from greenroom.server.signals import (
        remove_signal_handlers,
        setup_signal_handlers,
    )

    bind = config.server.bind
    port = config.server.port

    lifecycle = ServerLifecycle(shutdown_timeout=config.server.shutdown_timeout)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    setup_signal_handlers(loop, lifecycle, shutdown_event)

    app = create_app(config)
    app["lifecycle"] = lifecycle

    runner = web.AppRunner(app)
    await runner.setup()

    try:
        site = web.TCPSite(runner, bind, port)
        await site.start()

        logger.info(
            "greenroom started on http://%s:%d (PID %d)", bind, port, os.getpid()
        )
        logger.info("Health endpoint: http://%s:%d/health", bind, port)
        logger.info("Press Ctrl+C or send SIGTERM to stop")

        await shutdown_event.wait()

        logger.info(
            "Shutdown initiated, waiting up to %.1fs for running jobs",
            config.server.shutdown_timeout,
        )
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            logger.error("Port %d is already in use", port)
        elif e.errno == errno.EADDRNOTAVAIL:
            logger.error("Cannot bind to address %s", bind)
        else:
            logger.error("Server error: %s", e)
        return ExitCode.BIND_FAILED
    finally:
        remove_signal_handlers(loop)
        await runner.cleanup()
        logger.info("greenroom stopped")

    return ExitCode.SUCCESS


@click.command("serve")
@click.option(
    "--bind",
    type=str,
    default=None,
    help="Address to bind to (default: 127.0.0.1).",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to bind to (default: 8666).",
)
@click.option(
    "--data-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for job records, inputs and results.",
)
@click.option(
    "--progress-strategy",
    type=click.Choice(sorted(PROGRESS_STRATEGIES), case_sensitive=False),
    default=None,
    help="How encode progress is estimated (default: stream).",
)
@click.pass_context
def serve_command(
    ctx: click.Context,
    bind: str | None,
    port: int | None,
    data_dir: Path | None,
    progress_strategy: str | None,
) -> None:
    """Run the WebM conversion server.

    Serves /health, /upload, /status/{job_id} and /download/{job_id}.
    Handles graceful shutdown on SIGTERM or SIGINT (Ctrl+C), waiting for
    running conversions up to the configured shutdown timeout.

    Configuration precedence (highest to lowest):
      1. CLI flags (--bind, --port, --log-level, etc.)
      2. Environment variables (GREENROOM_*)
      3. Config file (--config or ~/.greenroom/config.toml)
      4. Default values

    \b
    Examples:
        greenroom serve                      # Start with defaults
        greenroom serve --port 9000          # Custom port
        greenroom serve --bind 0.0.0.0       # Listen on all interfaces
        greenroom --log-json serve           # JSON logging for log shippers
    """
    config = load_cli_config(
        ctx,
        include_stderr=True,
        server_bind=bind,
        server_port=port,
        data_dir=data_dir,
        progress_strategy=progress_strategy.lower() if progress_strategy else None,
    )

    for tool in ("ffmpeg", "ffprobe"):
        if find_tool(tool, config.get_tool_path(tool)) is None:
            logger.warning("%s not found; conversions will fail until installed", tool)

    if config.server.port < 1024:
        logger.warning("Port %d is privileged and may require root", config.server.port)

    logger.info(
        "Starting greenroom (bind=%s, port=%d, data_dir=%s, progress=%s)",
        config.server.bind,
        config.server.port,
        config.storage.data_dir,
        config.progress.strategy,
    )

    try:
        exit_code = asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Interrupted before server started")
        sys.exit(ExitCode.INTERRUPTED)
    sys.exit(exit_code)
