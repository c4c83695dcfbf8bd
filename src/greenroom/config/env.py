"""Typed access to GREENROOM_* environment variables.

The reader takes an optional mapping in place of os.environ, which keeps
configuration tests independent of the process environment.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})


def parse_bool(value: str) -> bool:
    """True for "true", "1", "yes" or "on" in any case, False otherwise.

    Shared by environment parsing and the upload form's detection flag.
    """
    return value.strip().casefold() in _TRUE_VALUES


class EnvReader:
    """Reads environment variables as str, int, float, bool or Path.

    Unset and empty variables both yield the default. Values that cannot be
    converted are logged and also yield the default, so one bad variable
    never prevents the service from starting.

        reader = EnvReader(env={"GREENROOM_PORT": "9000"})
        reader.get_int("GREENROOM_PORT", 8666)  # 9000
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = os.environ if env is None else env

    def get_str(self, var: str, default: str | None = None) -> str | None:
        value = self._env.get(var)
        return value if value else default

    def _convert(
        self, var: str, convert: Callable[[str], T], kind: str, default: T | None
    ) -> T | None:
        raw = self.get_str(var)
        if raw is None:
            return default
        try:
            return convert(raw)
        except ValueError:
            logger.warning("Invalid %s value for %s: %s", kind, var, raw)
            return default

    def get_int(self, var: str, default: int | None = None) -> int | None:
        return self._convert(var, int, "integer", default)

    def get_float(self, var: str, default: float | None = None) -> float | None:
        return self._convert(var, float, "float", default)

    def get_bool(self, var: str, default: bool | None = None) -> bool | None:
        return self._convert(var, parse_bool, "boolean", default)

    def get_path(
        self, var: str, must_exist: bool = False, default: Path | None = None
    ) -> Path | None:
        """Read a path, expanding ``~``.

        With must_exist, a path that is not on disk is reported and the
        default is returned instead.
        """
        raw = self.get_str(var)
        if raw is None:
            return default

        path = Path(raw).expanduser()
        if must_exist and not path.exists():
            logger.warning("%s points to a missing path: %s", var, raw)
            return default
        return path
