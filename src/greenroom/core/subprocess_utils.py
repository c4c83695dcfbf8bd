"""Subprocess utilities for external tool invocation.

Standard wrapper used for ffprobe probes and ffmpeg frame extraction, giving
consistent timeout handling, decoding and logging.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404 - subprocess is required for FFmpeg invocation
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def run_command(
    args: list[str | Path],
    timeout: float = 120,
    text: bool = True,
    errors: str = "replace",
    **kwargs: Any,
) -> tuple[Any, Any, int]:
    """Run external command with standard error handling.

    Args:
        args: Command and arguments. Path objects are converted to strings.
        timeout: Timeout in seconds (default 120).
        text: Return decoded text (default True). When False, stdout and
            stderr are returned as bytes, e.g. for raw video frames.
        errors: Error handling mode for text decoding (default "replace").
        **kwargs: Additional subprocess.run arguments.

    Returns:
        Tuple of (stdout, stderr, returncode).

    Raises:
        FileNotFoundError, PermissionError: If the tool cannot be started.
        subprocess.TimeoutExpired: If command times out. subprocess.run()
            kills the child before raising.
    """
    str_args = [str(arg) for arg in args]
    command_name = Path(str_args[0]).name if str_args else "unknown"

    logger.debug(
        "Executing command: %s",
        " ".join(str_args),
        extra={"command": command_name, "arg_count": len(str_args)},
    )

    text_kwargs: dict[str, Any] = {"text": True, "errors": errors} if text else {}
    start_time = time.monotonic()

    try:
        result = subprocess.run(  # nosec B603 - caller validates args
            str_args,
            capture_output=True,
            timeout=timeout,
            **text_kwargs,
            **kwargs,
        )
    except subprocess.TimeoutExpired:
        elapsed = time.monotonic() - start_time
        logger.warning(
            "Command timed out after %ss: %s",
            timeout,
            " ".join(str_args[:3]) + ("..." if len(str_args) > 3 else ""),
            extra={
                "command": command_name,
                "timeout_seconds": timeout,
                "elapsed_seconds": round(elapsed, 3),
            },
        )
        raise

    elapsed = time.monotonic() - start_time
    logger.debug(
        "Command completed",
        extra={
            "command": command_name,
            "elapsed_seconds": round(elapsed, 3),
            "returncode": result.returncode,
        },
    )

    empty = "" if text else b""
    return result.stdout or empty, result.stderr or empty, result.returncode
