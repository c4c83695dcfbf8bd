"""FFmpeg progress parsing utilities.

With `-progress pipe:1 -nostats` ffmpeg writes key=value lines to stdout in
blocks, each block terminated by a `progress=continue` or `progress=end`
line. ProgressStreamParser turns that line stream into FFmpegProgress
snapshots.
"""

import re
from dataclasses import dataclass


@dataclass
class FFmpegProgress:
    """Parsed FFmpeg progress block."""

    frame: int | None = None
    fps: float | None = None
    total_size: int | None = None
    out_time_us: int | None = None  # Output time in microseconds
    speed: str | None = None
    progress: str | None = None  # "continue" or "end"

    @property
    def out_time_seconds(self) -> float | None:
        """Get output time in seconds."""
        if self.out_time_us is not None:
            return self.out_time_us / 1_000_000
        return None

    @property
    def is_end(self) -> bool:
        """True for the final block ffmpeg writes before exiting."""
        return self.progress == "end"

    def get_fraction(self, duration_seconds: float | None) -> float | None:
        """Fraction of the media encoded so far (0.0 to 1.0).

        Returns None when either the duration or the output time is unknown.
        """
        if duration_seconds is None or duration_seconds <= 0:
            return None
        out_time = self.out_time_seconds
        if out_time is None:
            return None
        return max(0.0, min(1.0, out_time / duration_seconds))


_OUT_TIME_PATTERN = re.compile(r"^(-?)(\d+):(\d{2}):(\d{2})(?:\.(\d+))?$")

# Keys that require integer conversion (dropped on parse failure)
_INT_KEYS = frozenset(("frame", "total_size", "out_time_us", "out_time_ms"))

_VALID_KEYS = frozenset(
    (
        "frame",
        "fps",
        "total_size",
        "out_time_us",
        "out_time_ms",
        "out_time",
        "speed",
        "progress",
    )
)


def parse_out_time(value: str) -> int | None:
    """Parse an `out_time=HH:MM:SS.micro` value into microseconds."""
    match = _OUT_TIME_PATTERN.match(value.strip())
    if not match:
        return None
    sign, hours, minutes, seconds, fraction = match.groups()
    micros = int((fraction or "0").ljust(6, "0")[:6])
    total = (int(hours) * 3600 + int(minutes) * 60 + int(seconds)) * 1_000_000
    total += micros
    return -total if sign else total


def _convert_progress_value(key: str, value: str) -> int | float | str | None:
    if value == "N/A":
        return None
    if key in _INT_KEYS:
        try:
            return int(value)
        except ValueError:
            return None
    if key == "fps":
        try:
            return float(value)
        except ValueError:
            return None
    if key == "out_time":
        return parse_out_time(value)
    return value


def parse_progress_line(line: str) -> dict[str, str | int | float]:
    """Parse a single line from FFmpeg progress output.

    Args:
        line: A line from FFmpeg's -progress output.

    Returns:
        Dictionary with the parsed key-value pair, or empty dict if the line
        is not a recognized, parseable progress field.
    """
    line = line.strip()
    if "=" not in line:
        return {}

    key, _, value = line.partition("=")
    key = key.strip()
    value = value.strip()

    if key not in _VALID_KEYS:
        return {}

    converted = _convert_progress_value(key, value)
    if converted is None:
        return {}
    return {key: converted}


def _apply(result: FFmpegProgress, key: str, value: str | int | float) -> None:
    # ffmpeg reports out_time three ways; out_time_ms is in microseconds too.
    if key in ("out_time_us", "out_time_ms", "out_time"):
        if result.out_time_us is None or key == "out_time_us":
            result.out_time_us = int(value)
        return
    setattr(result, key, value)


def parse_progress_block(block: str) -> FFmpegProgress:
    """Parse a complete FFmpeg progress block.

    Args:
        block: A block of progress output lines.

    Returns:
        Parsed FFmpegProgress object.
    """
    result = FFmpegProgress()
    for line in block.split("\n"):
        for key, value in parse_progress_line(line).items():
            _apply(result, key, value)
    return result


class ProgressStreamParser:
    """Incremental parser for a `-progress` line stream.

    Example:
        parser = ProgressStreamParser()
        for line in process.stdout:
            block = parser.feed_line(line)
            if block is not None:
                handle(block)
    """

    def __init__(self) -> None:
        self._current = FFmpegProgress()

    def feed_line(self, line: str) -> FFmpegProgress | None:
        """Consume one line; return the finished block on a progress= line."""
        for key, value in parse_progress_line(line).items():
            _apply(self._current, key, value)
            if key == "progress":
                block, self._current = self._current, FFmpegProgress()
                return block
        return None
