"""External tool resolution."""

import logging
import shutil
from pathlib import Path

from greenroom.exceptions import ToolNotFoundError

logger = logging.getLogger(__name__)


def find_tool(name: str, configured_path: Path | None = None) -> Path | None:
    """Find a tool executable.

    Args:
        name: Tool name (e.g., "ffmpeg").
        configured_path: Optional configured path override.

    Returns:
        Path to tool executable, or None if not found.
    """
    if configured_path:
        if configured_path.is_file():
            return configured_path
        logger.warning(
            "Configured path for %s is not a file: %s", name, configured_path
        )

    which_result = shutil.which(name)
    if which_result:
        return Path(which_result)

    return None


def require_tool(name: str, configured_path: Path | None = None) -> Path:
    """Like find_tool, but raise ToolNotFoundError when the tool is missing."""
    path = find_tool(name, configured_path)
    if path is None:
        raise ToolNotFoundError(
            f"{name} not found. Install it or set its path in the "
            f"[tools] config section or GREENROOM_{name.upper()}_PATH."
        )
    return path
