"""Media introspection types."""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from greenroom.exceptions import GreenroomError


class MediaIntrospectionError(GreenroomError):
    """Raised when media introspection fails."""


@dataclass(frozen=True)
class MediaInfo:
    """Geometry and length of the first video stream.

    Attributes:
        width: Frame width in pixels, None if not reported.
        height: Frame height in pixels, None if not reported.
        duration: Duration in seconds (stream, else container), None if
            unknown or not positive.
        dimensions_reported: True when ffprobe returned both a width and a
            height field, even if one of them could not be parsed.
    """

    width: int | None
    height: int | None
    duration: float | None
    dimensions_reported: bool = True


class MediaIntrospector(Protocol):
    """Protocol for media introspection implementations."""

    def get_media_info(self, path: Path) -> MediaInfo:
        """Extract geometry and duration from a video file.

        Raises:
            MediaIntrospectionError: If the file cannot be introspected.
        """
        ...
