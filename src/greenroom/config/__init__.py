"""Configuration management for greenroom.

Configuration is layered with explicit precedence:
1. CLI flags (highest priority)
2. Environment variables (GREENROOM_*)
3. Config file (~/.greenroom/config.toml)
4. Default values (lowest priority)
"""

from greenroom.config.builder import (
    ConfigBuilder,
    ConfigSource,
    source_from_env,
    source_from_file,
)
from greenroom.config.env import EnvReader, parse_bool
from greenroom.config.loader import (
    get_default_config_path,
    load_config,
    load_config_file,
)
from greenroom.config.models import (
    EncoderConfig,
    GreenroomConfig,
    LoggingConfig,
    ProgressConfig,
    ServerConfig,
    StorageConfig,
    ToolPathsConfig,
)

__all__ = [
    # Models
    "EncoderConfig",
    "GreenroomConfig",
    "LoggingConfig",
    "ProgressConfig",
    "ServerConfig",
    "StorageConfig",
    "ToolPathsConfig",
    # Loading
    "ConfigBuilder",
    "ConfigSource",
    "EnvReader",
    "get_default_config_path",
    "load_config",
    "load_config_file",
    "parse_bool",
    "source_from_env",
    "source_from_file",
]
