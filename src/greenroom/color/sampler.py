"""Chroma-key background color estimation.

The sampler crops four small patches just inside the frame corners at a
few points along the timeline, has ffmpeg emit them as raw rgb24 pixels and
averages every sampled pixel into one color. Corners are assumed to show
background only.
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404 - subprocess is required for FFmpeg invocation
from dataclasses import dataclass
from pathlib import Path

from greenroom.core.subprocess_utils import run_command
from greenroom.exceptions import GreenroomError, ToolNotFoundError
from greenroom.introspector.ffprobe import FFprobeIntrospector
from greenroom.introspector.interface import (
    MediaInfo,
    MediaIntrospectionError,
    MediaIntrospector,
)
from greenroom.tools.paths import require_tool

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "0x00FF00"
FALLBACK_WIDTH = 1920
FALLBACK_HEIGHT = 1080
FALLBACK_DURATION = 1.0
PATCH_SIZE = 20
PATCH_MARGIN = 10
EXTRACT_TIMEOUT = 60

# First offset in seconds, then fractions of the duration
LEAD_IN_SECONDS = 0.5
TIMELINE_FRACTIONS = (0.5, 0.75)


class ColorSamplingError(GreenroomError):
    """Raised when the external tools needed for sampling cannot run."""


@dataclass(frozen=True)
class Patch:
    """A rectangular pixel region, in frame coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def crop_filter(self) -> str:
        return f"crop={self.width}:{self.height}:{self.x}:{self.y}"


def corner_patches(
    width: int, height: int, size: int = PATCH_SIZE, margin: int = PATCH_MARGIN
) -> list[Patch]:
    """Four patches inset from the frame corners, clamped inside the frame.

    Patches shrink to the frame when the frame is smaller than a patch.
    Order: top-left, top-right, bottom-left, bottom-right.
    """
    patch_w = max(1, min(size, width))
    patch_h = max(1, min(size, height))
    max_x = max(0, width - patch_w)
    max_y = max(0, height - patch_h)

    left = min(margin, max_x)
    right = min(max(0, width - margin - patch_w), max_x)
    top = min(margin, max_y)
    bottom = min(max(0, height - margin - patch_h), max_y)

    return [
        Patch(left, top, patch_w, patch_h),
        Patch(right, top, patch_w, patch_h),
        Patch(left, bottom, patch_w, patch_h),
        Patch(right, bottom, patch_w, patch_h),
    ]


def timeline_offsets(duration: float) -> list[float]:
    """Seek offsets in seconds: 0.5s, 50% and 75% of the duration."""
    candidates = [LEAD_IN_SECONDS] + [duration * f for f in TIMELINE_FRACTIONS]
    offsets: list[float] = []
    for offset in candidates:
        offset = round(max(0.0, offset), 3)
        if offset not in offsets:
            offsets.append(offset)
    return offsets


def average_color(frames: list[bytes]) -> str | None:
    """Average complete rgb24 triples across frames.

    Returns:
        "0xRRGGBB" with each channel truncated, or None if no pixels.
    """
    red = green = blue = pixels = 0
    for data in frames:
        count = len(data) // 3
        if count == 0:
            continue
        end = count * 3
        red += sum(data[0:end:3])
        green += sum(data[1:end:3])
        blue += sum(data[2:end:3])
        pixels += count

    if pixels == 0:
        return None
    return "0x%02X%02X%02X" % (red // pixels, green // pixels, blue // pixels)


def build_extract_command(
    ffmpeg: Path | str, path: Path, offset: float, patches: list[Patch]
) -> list[str | Path]:
    """ffmpeg invocation emitting the patches side by side as one rgb24 frame."""
    count = len(patches)
    labels = [f"p{i}" for i in range(count)]
    split = f"[0:v]split={count}" + "".join(f"[s{i}]" for i in range(count))
    crops = [
        f"[s{i}]{patch.crop_filter}[{label}]"
        for i, (patch, label) in enumerate(zip(patches, labels))
    ]
    stack = "".join(f"[{label}]" for label in labels)
    stack += f"hstack=inputs={count}[out]"
    filter_graph = ";".join([split, *crops, stack])

    return [
        ffmpeg,
        "-v",
        "error",
        "-ss",
        f"{offset:.3f}",
        "-i",
        path,
        "-filter_complex",
        filter_graph,
        "-map",
        "[out]",
        "-frames:v",
        "1",
        "-f",
        "rawvideo",
        "-pix_fmt",
        "rgb24",
        "pipe:1",
    ]


class ColorSampler:
    """Estimates the chroma-key background color of a video file."""

    def __init__(
        self,
        ffmpeg_path: Path | None = None,
        ffprobe_path: Path | None = None,
        introspector: MediaIntrospector | None = None,
    ) -> None:
        self._ffmpeg_path = ffmpeg_path
        self._ffprobe_path = ffprobe_path
        self._introspector = introspector

    def _get_introspector(self) -> MediaIntrospector:
        if self._introspector is None:
            self._introspector = FFprobeIntrospector(self._ffprobe_path)
        return self._introspector

    def detect_color(self, path: Path, info: MediaInfo | None = None) -> str:
        """Return the averaged corner color as "0xRRGGBB".

        Returns DEFAULT_COLOR when ffprobe reports no usable dimensions or
        no pixel could be extracted. A caller that already ran ffprobe on the
        file passes its MediaInfo so ffprobe is not run again.

        Raises:
            ColorSamplingError: If ffprobe or ffmpeg cannot be started.
        """
        try:
            ffmpeg = require_tool("ffmpeg", self._ffmpeg_path)
            if info is None:
                info = self._get_introspector().get_media_info(path)
        except ToolNotFoundError as e:
            raise ColorSamplingError(str(e)) from e
        except MediaIntrospectionError as e:
            logger.warning("ffprobe failed for %s, using default color: %s", path, e)
            return DEFAULT_COLOR

        if not info.dimensions_reported:
            logger.warning("No video dimensions for %s, using default color", path)
            return DEFAULT_COLOR

        width = info.width or FALLBACK_WIDTH
        height = info.height or FALLBACK_HEIGHT
        duration = info.duration or FALLBACK_DURATION
        patches = corner_patches(width, height)

        frames = []
        for offset in timeline_offsets(duration):
            data = self._extract(ffmpeg, path, offset, patches)
            if data:
                frames.append(data)

        color = average_color(frames)
        if color is None:
            logger.warning("No pixels sampled from %s, using default color", path)
            return DEFAULT_COLOR

        logger.info("Detected background color %s for %s", color, path.name)
        return color

    def _extract(
        self, ffmpeg: Path, path: Path, offset: float, patches: list[Patch]
    ) -> bytes:
        command = build_extract_command(ffmpeg, path, offset, patches)
        try:
            stdout, stderr, returncode = run_command(
                command, timeout=EXTRACT_TIMEOUT, text=False
            )
        except subprocess.TimeoutExpired:
            return b""
        except OSError as e:
            raise ColorSamplingError(f"Cannot run ffmpeg at {ffmpeg}: {e}") from e

        if returncode != 0:
            logger.debug(
                "Patch extraction at %.3fs failed (exit %d): %s",
                offset,
                returncode,
                stderr.decode("utf-8", errors="replace").strip(),
            )
            return b""
        return stdout


def sample_background_color(
    sampler: ColorSampler, path: Path, info: MediaInfo | None = None
) -> str | None:
    """Run the sampler, reporting any sampling failure as "no color"."""
    try:
        return sampler.detect_color(path, info)
    except GreenroomError as e:
        logger.warning("Background color detection failed for %s: %s", path, e)
        return None
