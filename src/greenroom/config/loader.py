"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed to load_config as a ConfigSource)
2. Environment variables (GREENROOM_*)
3. Config file (~/.greenroom/config.toml)
4. Default values

Environment variables:
- GREENROOM_CONFIG_PATH: Path to config file (overrides default location)
- GREENROOM_BIND / GREENROOM_PORT: Server address
- GREENROOM_SHUTDOWN_TIMEOUT: Seconds to drain jobs on shutdown
- GREENROOM_MAX_UPLOAD_MB: Largest accepted upload
- GREENROOM_DATA_DIR: Base directory for jobs/, inputs/, results/
- GREENROOM_FFMPEG_PATH / GREENROOM_FFPROBE_PATH: Tool locations
- GREENROOM_PROGRESS_STRATEGY: "stream" or "size"
- GREENROOM_LOG_LEVEL / GREENROOM_LOG_FILE / GREENROOM_LOG_FORMAT: Logging
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from greenroom.config.builder import (
    ConfigBuilder,
    ConfigSource,
    source_from_env,
    source_from_file,
)
from greenroom.config.env import EnvReader
from greenroom.config.models import GreenroomConfig
from greenroom.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".greenroom"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"


def get_default_config_path(env: Mapping[str, str] | None = None) -> Path:
    """Get the default config file path.

    Can be overridden by GREENROOM_CONFIG_PATH environment variable.
    """
    env_path = (env if env is not None else os.environ).get("GREENROOM_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_FILE


def load_config_file(path: Path) -> dict[str, Any]:
    """Load and parse a TOML config file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed dictionary. Empty dict if the file doesn't exist.

    Raises:
        ConfigError: If the file exists but cannot be read or parsed.
    """
    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}

    try:
        with path.open("rb") as f:
            config = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    logger.debug("Loaded config from %s", path)
    return config


def load_config(
    config_path: Path | None = None,
    cli_source: ConfigSource | None = None,
    env: Mapping[str, str] | None = None,
) -> GreenroomConfig:
    """Get configuration with full precedence handling.

    Args:
        config_path: Path to config file (overrides GREENROOM_CONFIG_PATH).
        cli_source: Values from command-line flags (highest precedence).
        env: Optional environment mapping for testing (os.environ if None).

    Returns:
        GreenroomConfig with merged configuration.

    Raises:
        ConfigError: If the config file or any value is invalid.
    """
    reader = EnvReader(env)
    path = config_path or get_default_config_path(env)

    builder = ConfigBuilder()
    builder.apply(source_from_file(load_config_file(path)))
    builder.apply(source_from_env(reader))
    if cli_source is not None:
        builder.apply(cli_source)

    return builder.build()
