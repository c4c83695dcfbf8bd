"""WebM encoding via ffmpeg.

WebmEncoder runs one VP9/Opus encode to completion. stderr is drained on a
reader thread and its tail kept for diagnostics; when progress reporting is
requested, ffmpeg's `-progress pipe:1` blocks are parsed from stdout and
handed to the caller's callback on the calling thread.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404 - subprocess is required for FFmpeg invocation
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from greenroom.exceptions import ToolNotFoundError
from greenroom.tools.ffmpeg_progress import FFmpegProgress, ProgressStreamParser
from greenroom.tools.paths import require_tool

if TYPE_CHECKING:
    from greenroom.config.models import EncoderConfig
    from greenroom.jobs.models import ConversionOptions

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[FFmpegProgress], None]

# Number of stderr lines kept for failure diagnostics
STDERR_TAIL_LINES = 20
STDERR_DRAIN_TIMEOUT = 5.0


@dataclass(frozen=True)
class EncodeResult:
    """Outcome of one encode run."""

    success: bool
    """True if ffmpeg exited 0 and wrote the output file."""

    return_code: int | None = None
    """ffmpeg exit status, None if it never started."""

    stderr_tail: str = ""
    """Last lines ffmpeg wrote to stderr."""

    error: str | None = None
    """Human-readable failure description, None on success."""


class WebmEncoder:
    """Converts media files to WebM (VP9 video, Opus audio)."""

    def __init__(
        self,
        encoder_config: EncoderConfig,
        ffmpeg_path: Path | None = None,
    ) -> None:
        self._config = encoder_config
        self._ffmpeg_path = ffmpeg_path

    def build_command(
        self,
        input_path: Path,
        output_path: Path,
        options: ConversionOptions,
        progress: bool = False,
        ffmpeg: Path | str = "ffmpeg",
    ) -> list[str]:
        """Build the ffmpeg argument list for one encode.

        Args:
            input_path: Source media.
            output_path: Destination .webm file (overwritten).
            options: Per-job quality and audio bitrate.
            progress: Add `-progress pipe:1 -nostats` for stdout reporting.
            ffmpeg: Executable to invoke.
        """
        cfg = self._config
        cmd = [
            str(ffmpeg),
            "-y",
            "-i",
            str(input_path),
            "-c:v",
            "libvpx-vp9",
            "-pix_fmt",
            "yuv420p",
            "-crf",
            str(options.quality),
            "-b:v",
            cfg.video_bitrate,
            "-cpu-used",
            str(cfg.cpu_used),
            "-deadline",
            "realtime",
            "-row-mt",
            "1",
            "-tile-columns",
            str(cfg.tile_columns),
            "-threads",
            str(cfg.threads),
            "-lag-in-frames",
            "0",
            "-c:a",
            "libopus",
            "-b:a",
            options.audio_bitrate,
            "-f",
            "webm",
        ]
        if progress:
            cmd.extend(["-progress", "pipe:1", "-nostats"])
        cmd.append(str(output_path))
        return cmd

    def encode(
        self,
        input_path: Path,
        output_path: Path,
        options: ConversionOptions,
        progress_callback: ProgressCallback | None = None,
    ) -> EncodeResult:
        """Run ffmpeg and wait for it to exit.

        Blocking; the orchestrator runs it in a worker thread. Spawn failures
        are reported as an unsuccessful EncodeResult rather than raised.

        Args:
            input_path: Source media.
            output_path: Destination .webm file.
            options: Per-job encoder options.
            progress_callback: Receives each parsed progress block. Errors it
                raises are logged and ignored.
        """
        try:
            ffmpeg = require_tool("ffmpeg", self._ffmpeg_path)
        except ToolNotFoundError as e:
            return EncodeResult(success=False, error=str(e))

        with_progress = progress_callback is not None
        cmd = self.build_command(
            input_path, output_path, options, progress=with_progress, ffmpeg=ffmpeg
        )
        logger.debug("Executing command: %s", " ".join(cmd))

        try:
            process = subprocess.Popen(  # nosec B603 - args built above
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE if with_progress else subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            return EncodeResult(success=False, error=f"Failed to start ffmpeg: {e}")

        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        def read_stderr() -> None:
            try:
                assert process.stderr is not None
                for line in process.stderr:
                    stderr_tail.append(line.rstrip())
            except (ValueError, OSError) as e:
                logger.debug("Stderr reader stopped: %s", e)

        reader_thread = threading.Thread(target=read_stderr, daemon=True)
        reader_thread.start()

        if with_progress:
            assert process.stdout is not None
            parser = ProgressStreamParser()
            for line in process.stdout:
                block = parser.feed_line(line)
                if block is None:
                    continue
                try:
                    progress_callback(block)
                except Exception as e:
                    logger.warning("Progress callback error: %s", e)

        return_code = process.wait()
        reader_thread.join(timeout=STDERR_DRAIN_TIMEOUT)
        tail = "\n".join(stderr_tail)

        if return_code != 0:
            message = f"ffmpeg exited with code {return_code}"
            if tail:
                message = f"{message}: {tail}"
            return EncodeResult(
                success=False, return_code=return_code, stderr_tail=tail, error=message
            )
        if not output_path.exists():
            return EncodeResult(
                success=False,
                return_code=return_code,
                stderr_tail=tail,
                error="ffmpeg exited successfully but produced no output",
            )
        return EncodeResult(success=True, return_code=return_code, stderr_tail=tail)
