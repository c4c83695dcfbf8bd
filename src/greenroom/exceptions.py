"""Exception hierarchy shared across greenroom packages."""


class GreenroomError(Exception):
    """Base class for all greenroom errors."""


class ConfigError(GreenroomError):
    """Configuration file or value is invalid."""


class ToolNotFoundError(GreenroomError):
    """A required external tool (ffmpeg, ffprobe) is not available."""
