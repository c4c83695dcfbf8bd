"""Shared helpers for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import click

from greenroom.cli.exit_codes import ExitCode
from greenroom.config import ConfigSource, GreenroomConfig, load_config
from greenroom.exceptions import ConfigError
from greenroom.logging import configure_logging

logger = logging.getLogger(__name__)


def load_cli_config(
    ctx: click.Context, include_stderr: bool = False, **overrides: Any
) -> GreenroomConfig:
    """Load configuration with CLI flags on top, then configure logging.

    Global logging flags are read from ctx.obj (set by the `greenroom`
    group); command-specific flags come in as ConfigSource field overrides.
    Exits with CONFIG_ERROR if the configuration is invalid.
    """
    obj: dict[str, Any] = ctx.find_root().obj or {}
    cli_source = ConfigSource(
        logging_level=obj.get("log_level"),
        logging_file=obj.get("log_file"),
        logging_format=obj.get("log_format"),
        logging_include_stderr=True if include_stderr else None,
        **overrides,
    )
    config_path: Path | None = obj.get("config_path")

    try:
        config = load_config(config_path=config_path, cli_source=cli_source)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(ExitCode.CONFIG_ERROR)

    configure_logging(config.logging)
    return config
