"""Configuration data models.

This module defines dataclasses for greenroom configuration options.
"""

import tempfile
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DATA_DIR = Path(tempfile.gettempdir()) / "greenroom"

PROGRESS_STRATEGIES = frozenset({"stream", "size"})


@dataclass
class ServerConfig:
    """Configuration for the HTTP server started by `greenroom serve`."""

    bind: str = "127.0.0.1"
    """Network address to bind to. Default localhost for security."""

    port: int = 8666
    """Port number for HTTP server."""

    shutdown_timeout: float = 30.0
    """Seconds to wait for in-flight jobs on shutdown."""

    max_upload_mb: int = 2048
    """Largest accepted upload in megabytes."""

    cleanup_max_age_hours: float = 24.0
    """Orphaned inputs/results older than this are removed at startup."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be 1-65535, got {self.port}")
        if self.shutdown_timeout <= 0:
            raise ValueError(
                f"shutdown_timeout must be positive, got {self.shutdown_timeout}"
            )
        if self.max_upload_mb < 1:
            raise ValueError(f"max_upload_mb must be >= 1, got {self.max_upload_mb}")
        if self.cleanup_max_age_hours <= 0:
            raise ValueError(
                "cleanup_max_age_hours must be positive, "
                f"got {self.cleanup_max_age_hours}"
            )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@dataclass
class StorageConfig:
    """On-disk layout for job records, staged inputs and finished artifacts.

    All three directories live under one data directory and are created
    once at startup.
    """

    data_dir: Path = DEFAULT_DATA_DIR

    @property
    def jobs_dir(self) -> Path:
        return self.data_dir / "jobs"

    @property
    def inputs_dir(self) -> Path:
        return self.data_dir / "inputs"

    @property
    def results_dir(self) -> Path:
        return self.data_dir / "results"

    def ensure_dirs(self) -> None:
        """Create the storage directories if they do not exist."""
        for directory in (self.jobs_dir, self.inputs_dir, self.results_dir):
            directory.mkdir(parents=True, exist_ok=True)


@dataclass
class ToolPathsConfig:
    """Configuration for external tool paths.

    All paths are optional. If not specified, tools are looked up in PATH.
    """

    ffmpeg: Path | None = None
    ffprobe: Path | None = None


@dataclass
class EncoderConfig:
    """Fixed VP9 encoder tuning passed to ffmpeg."""

    video_bitrate: str = "1M"
    cpu_used: int = 5
    threads: int = 4
    tile_columns: int = 2

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.threads < 1:
            raise ValueError(f"threads must be >= 1, got {self.threads}")
        if not -8 <= self.cpu_used <= 8:
            raise ValueError(f"cpu_used must be -8..8, got {self.cpu_used}")


@dataclass
class ProgressConfig:
    """Configuration for encode progress estimation.

    strategy selects the observation channel:
    - "stream": parse ffmpeg's -progress key=value output
    - "size": poll the output file size and extrapolate from elapsed time
    """

    strategy: str = "stream"

    # Seconds between output-size samples (size strategy)
    poll_interval: float = 2.0

    # Hard wall-clock limit on the observation loop (size strategy)
    ceiling_seconds: float = 120.0

    # Estimated encode wall time as a multiple of media duration
    encode_speed_ratio: float = 0.8

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.strategy not in PROGRESS_STRATEGIES:
            raise ValueError(
                f"strategy must be one of {sorted(PROGRESS_STRATEGIES)}, "
                f"got {self.strategy}"
            )
        if self.poll_interval <= 0:
            raise ValueError(
                f"poll_interval must be positive, got {self.poll_interval}"
            )
        if self.ceiling_seconds <= 0:
            raise ValueError(
                f"ceiling_seconds must be positive, got {self.ceiling_seconds}"
            )
        if self.encode_speed_ratio <= 0:
            raise ValueError(
                "encode_speed_ratio must be positive, "
                f"got {self.encode_speed_ratio}"
            )


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class GreenroomConfig:
    """Main configuration container.

    Aggregates all configuration sections.
    """

    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    tools: ToolPathsConfig = field(default_factory=ToolPathsConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def get_tool_path(self, tool_name: str) -> Path | None:
        """Get configured path for a tool.

        Args:
            tool_name: Name of the tool (ffmpeg, ffprobe).

        Returns:
            Configured path or None if not configured.
        """
        return getattr(self.tools, tool_name.lower(), None)
