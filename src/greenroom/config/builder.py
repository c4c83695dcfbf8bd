"""Configuration builder with explicit layering.

ConfigBuilder composes GreenroomConfig from several ConfigSources, later
sources overriding earlier ones for every value they actually set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from greenroom.config.env import EnvReader
from greenroom.config.models import (
    DEFAULT_DATA_DIR,
    EncoderConfig,
    GreenroomConfig,
    LoggingConfig,
    ProgressConfig,
    ServerConfig,
    StorageConfig,
    ToolPathsConfig,
)
from greenroom.exceptions import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class ConfigSource:
    """Configuration values from a single source.

    None values indicate "not specified in this source" and will not
    override values from lower-precedence sources.
    """

    # Server
    server_bind: str | None = None
    server_port: int | None = None
    server_shutdown_timeout: float | None = None
    server_max_upload_mb: int | None = None
    server_cleanup_max_age_hours: float | None = None

    # Storage
    data_dir: Path | None = None

    # Tool paths
    ffmpeg_path: Path | None = None
    ffprobe_path: Path | None = None

    # Encoder
    encoder_video_bitrate: str | None = None
    encoder_cpu_used: int | None = None
    encoder_threads: int | None = None
    encoder_tile_columns: int | None = None

    # Progress
    progress_strategy: str | None = None
    progress_poll_interval: float | None = None
    progress_ceiling_seconds: float | None = None
    progress_encode_speed_ratio: float | None = None

    # Logging
    logging_level: str | None = None
    logging_file: Path | None = None
    logging_format: str | None = None
    logging_include_stderr: bool | None = None
    logging_max_bytes: int | None = None
    logging_backup_count: int | None = None


class ConfigBuilder:
    """Builds GreenroomConfig by layering ConfigSources with precedence.

    Example:
        builder = ConfigBuilder()
        builder.apply(source_from_file(file_config))
        builder.apply(source_from_env(reader))
        builder.apply(cli_source)
        config = builder.build()
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def apply(self, source: ConfigSource) -> None:
        """Apply configuration source, overriding existing values.

        Non-None values from the source override existing values.
        """
        for field_obj in fields(source):
            value = getattr(source, field_obj.name)
            if value is not None:
                self._values[field_obj.name] = value

    def _get(self, key: str, default: Any) -> Any:
        return self._values.get(key, default)

    def build(self) -> GreenroomConfig:
        """Build the final GreenroomConfig with defaults for unset values.

        Raises:
            ConfigError: If any section rejects its values.
        """
        try:
            server = ServerConfig(
                bind=self._get("server_bind", "127.0.0.1"),
                port=self._get("server_port", 8666),
                shutdown_timeout=self._get("server_shutdown_timeout", 30.0),
                max_upload_mb=self._get("server_max_upload_mb", 2048),
                cleanup_max_age_hours=self._get("server_cleanup_max_age_hours", 24.0),
            )
            storage = StorageConfig(data_dir=self._get("data_dir", DEFAULT_DATA_DIR))
            tools = ToolPathsConfig(
                ffmpeg=self._get("ffmpeg_path", None),
                ffprobe=self._get("ffprobe_path", None),
            )
            encoder = EncoderConfig(
                video_bitrate=self._get("encoder_video_bitrate", "1M"),
                cpu_used=self._get("encoder_cpu_used", 5),
                threads=self._get("encoder_threads", 4),
                tile_columns=self._get("encoder_tile_columns", 2),
            )
            progress = ProgressConfig(
                strategy=self._get("progress_strategy", "stream"),
                poll_interval=self._get("progress_poll_interval", 2.0),
                ceiling_seconds=self._get("progress_ceiling_seconds", 120.0),
                encode_speed_ratio=self._get("progress_encode_speed_ratio", 0.8),
            )
            logging_config = LoggingConfig(
                level=self._get("logging_level", "info"),
                file=self._get("logging_file", None),
                format=self._get("logging_format", "text"),
                include_stderr=self._get("logging_include_stderr", False),
                max_bytes=self._get("logging_max_bytes", 10_485_760),
                backup_count=self._get("logging_backup_count", 5),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

        return GreenroomConfig(
            server=server,
            storage=storage,
            tools=tools,
            encoder=encoder,
            progress=progress,
            logging=logging_config,
        )


def _optional_path(value: Any) -> Path | None:
    return Path(value).expanduser() if value else None


def source_from_file(file_config: dict[str, Any]) -> ConfigSource:
    """Create ConfigSource from parsed TOML config file.

    Args:
        file_config: Parsed configuration dictionary from TOML file.

    Returns:
        ConfigSource with values from the config file.
    """
    server = file_config.get("server", {})
    storage = file_config.get("storage", {})
    tools = file_config.get("tools", {})
    encoder = file_config.get("encoder", {})
    progress = file_config.get("progress", {})
    logging_conf = file_config.get("logging", {})

    return ConfigSource(
        # Server
        server_bind=server.get("bind"),
        server_port=server.get("port"),
        server_shutdown_timeout=server.get("shutdown_timeout"),
        server_max_upload_mb=server.get("max_upload_mb"),
        server_cleanup_max_age_hours=server.get("cleanup_max_age_hours"),
        # Storage
        data_dir=_optional_path(storage.get("data_dir")),
        # Tool paths
        ffmpeg_path=_optional_path(tools.get("ffmpeg")),
        ffprobe_path=_optional_path(tools.get("ffprobe")),
        # Encoder
        encoder_video_bitrate=encoder.get("video_bitrate"),
        encoder_cpu_used=encoder.get("cpu_used"),
        encoder_threads=encoder.get("threads"),
        encoder_tile_columns=encoder.get("tile_columns"),
        # Progress
        progress_strategy=progress.get("strategy"),
        progress_poll_interval=progress.get("poll_interval"),
        progress_ceiling_seconds=progress.get("ceiling_seconds"),
        progress_encode_speed_ratio=progress.get("encode_speed_ratio"),
        # Logging
        logging_level=logging_conf.get("level"),
        logging_file=_optional_path(logging_conf.get("file")),
        logging_format=logging_conf.get("format"),
        logging_include_stderr=logging_conf.get("include_stderr"),
        logging_max_bytes=logging_conf.get("max_bytes"),
        logging_backup_count=logging_conf.get("backup_count"),
    )


def source_from_env(reader: EnvReader) -> ConfigSource:
    """Create ConfigSource from GREENROOM_* environment variables."""
    return ConfigSource(
        # Server
        server_bind=reader.get_str("GREENROOM_BIND"),
        server_port=reader.get_int("GREENROOM_PORT"),
        server_shutdown_timeout=reader.get_float("GREENROOM_SHUTDOWN_TIMEOUT"),
        server_max_upload_mb=reader.get_int("GREENROOM_MAX_UPLOAD_MB"),
        # Storage
        data_dir=reader.get_path("GREENROOM_DATA_DIR"),
        # Tool paths
        ffmpeg_path=reader.get_path("GREENROOM_FFMPEG_PATH", must_exist=True),
        ffprobe_path=reader.get_path("GREENROOM_FFPROBE_PATH", must_exist=True),
        # Progress
        progress_strategy=reader.get_str("GREENROOM_PROGRESS_STRATEGY"),
        # Logging
        logging_level=reader.get_str("GREENROOM_LOG_LEVEL"),
        logging_file=reader.get_path("GREENROOM_LOG_FILE"),
        logging_format=reader.get_str("GREENROOM_LOG_FORMAT"),
    )
