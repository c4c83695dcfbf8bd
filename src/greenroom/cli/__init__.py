"""CLI module for greenroom."""

from pathlib import Path

import click


@click.group()
@click.version_option(package_name="greenroom")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to configuration file (default: ~/.greenroom/config.toml).",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Override log level (default: info).",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    default=None,
    help="Override log file path.",
)
@click.option(
    "--log-json",
    is_flag=True,
    default=False,
    help="Use JSON log format.",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
    log_json: bool,
) -> None:
    """greenroom - asynchronous WebM conversion with chroma-key detection."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level.lower() if log_level else None
    ctx.obj["log_file"] = log_file
    ctx.obj["log_format"] = "json" if log_json else None


# Defer import to avoid circular dependency
def _register_commands() -> None:
    from greenroom.cli.detect import detect_color_command
    from greenroom.cli.serve import serve_command

    main.add_command(serve_command)
    main.add_command(detect_color_command)


_register_commands()
