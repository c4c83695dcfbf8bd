"""FFprobe-based implementation of the MediaIntrospector protocol."""

import json
import logging
import subprocess  # nosec B404 - subprocess is required for ffprobe invocation
from pathlib import Path
from typing import Any

from greenroom.core.subprocess_utils import run_command
from greenroom.exceptions import ToolNotFoundError
from greenroom.introspector.interface import MediaInfo, MediaIntrospectionError
from greenroom.tools.paths import require_tool

logger = logging.getLogger(__name__)

PROBE_TIMEOUT = 60


def _parse_int(value: Any) -> int | None:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _parse_duration(value: Any) -> float | None:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def parse_media_info(data: dict[str, Any]) -> MediaInfo:
    """Build MediaInfo from ffprobe JSON output.

    Uses the first stream in the output (the probe selects v:0). Stream
    duration wins over the container duration.
    """
    streams = data.get("streams") or []
    stream: dict[str, Any] = streams[0] if streams else {}
    container: dict[str, Any] = data.get("format") or {}

    duration = _parse_duration(stream.get("duration"))
    if duration is None:
        duration = _parse_duration(container.get("duration"))

    return MediaInfo(
        width=_parse_int(stream.get("width")),
        height=_parse_int(stream.get("height")),
        duration=duration,
        dimensions_reported="width" in stream and "height" in stream,
    )


class FFprobeIntrospector:
    """ffprobe-based implementation of the MediaIntrospector protocol.

    Extracts video geometry and duration for color sampling and progress
    estimation.
    """

    def __init__(self, ffprobe_path: Path | None = None) -> None:
        """Initialize the introspector.

        Args:
            ffprobe_path: Optional configured path to ffprobe. PATH is
                searched when not provided.

        Raises:
            ToolNotFoundError: If ffprobe is not available.
        """
        self._ffprobe_path = require_tool("ffprobe", ffprobe_path)

    def get_media_info(self, path: Path) -> MediaInfo:
        """Extract geometry and duration from a video file.

        Args:
            path: Path to the video file.

        Returns:
            MediaInfo for the first video stream.

        Raises:
            MediaIntrospectionError: If ffprobe fails, times out, or prints
                something other than a JSON object.
            ToolNotFoundError: If ffprobe cannot be started.
        """
        try:
            stdout, stderr, returncode = run_command(
                [
                    self._ffprobe_path,
                    "-v",
                    "error",
                    "-select_streams",
                    "v:0",
                    "-show_entries",
                    "stream=width,height,duration:format=duration",
                    "-print_format",
                    "json",
                    path,
                ],
                timeout=PROBE_TIMEOUT,
            )
        except subprocess.TimeoutExpired as e:
            raise MediaIntrospectionError(
                f"ffprobe timed out for {path} after {e.timeout}s"
            ) from e
        except OSError as e:
            raise ToolNotFoundError(
                f"Cannot run ffprobe at {self._ffprobe_path}: {e}"
            ) from e

        if returncode != 0:
            raise MediaIntrospectionError(
                f"ffprobe failed for {path} (exit {returncode}): {stderr.strip()}"
            )

        try:
            data = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise MediaIntrospectionError(
                f"Invalid ffprobe output for {path}: {e}"
            ) from e
        if not isinstance(data, dict):
            raise MediaIntrospectionError(f"Unexpected ffprobe output for {path}")

        return parse_media_info(data)

    def get_duration(self, path: Path, default: float = 1.0) -> float:
        """Best-effort media duration in seconds.

        Returns default when the file cannot be probed or reports no
        duration.
        """
        try:
            info = self.get_media_info(path)
        except (MediaIntrospectionError, ToolNotFoundError) as e:
            logger.debug("Could not determine duration of %s: %s", path, e)
            return default
        return info.duration if info.duration is not None else default
