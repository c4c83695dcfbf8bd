"""External tool helpers: executable resolution and ffmpeg progress parsing."""

from greenroom.tools.ffmpeg_progress import (
    FFmpegProgress,
    ProgressStreamParser,
    parse_out_time,
    parse_progress_block,
    parse_progress_line,
)
from greenroom.tools.paths import find_tool, require_tool

__all__ = [
    "FFmpegProgress",
    "ProgressStreamParser",
    "find_tool",
    "parse_out_time",
    "parse_progress_block",
    "parse_progress_line",
    "require_tool",
]
