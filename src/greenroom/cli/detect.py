"""CLI detect-color command."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from greenroom.cli.common import load_cli_config
from greenroom.cli.exit_codes import ExitCode
from greenroom.color.sampler import ColorSampler, ColorSamplingError


@click.command("detect-color")
@click.argument(
    "file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.pass_context
def detect_color_command(ctx: click.Context, file: Path) -> None:
    """Print the estimated chroma-key background color of FILE.

    Samples patches near the four frame corners and prints the average as
    0xRRGGBB. Prints the default 0x00FF00 when the file has no readable
    video stream.
    """
    config = load_cli_config(ctx)
    sampler = ColorSampler(config.tools.ffmpeg, config.tools.ffprobe)

    try:
        color = sampler.detect_color(file)
    except ColorSamplingError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(ExitCode.TOOL_NOT_AVAILABLE)

    click.echo(color)
