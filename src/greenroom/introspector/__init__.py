"""Media introspection via ffprobe."""

from greenroom.introspector.ffprobe import FFprobeIntrospector, parse_media_info
from greenroom.introspector.interface import (
    MediaInfo,
    MediaIntrospectionError,
    MediaIntrospector,
)

__all__ = [
    "FFprobeIntrospector",
    "MediaInfo",
    "MediaIntrospectionError",
    "MediaIntrospector",
    "parse_media_info",
]
