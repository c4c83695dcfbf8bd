"""Orphaned file cleanup for server startup.

A crash or SIGKILL can leave files behind in the data directory:
- inputs/input_*.tmp : staged uploads whose job never finished
- results/*.webm     : artifacts that were never downloaded
- jobs/.*.tmp        : interrupted atomic record writes

Files younger than max_age_hours are kept so a restart never races with
work that is still being picked up.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from greenroom.config.models import StorageConfig
    from greenroom.jobs.store import JobStore

logger = logging.getLogger(__name__)


def _is_stale(path: Path, cutoff_time: float) -> bool:
    return path.is_file() and path.stat().st_mtime < cutoff_time


def cleanup_orphaned_files(
    storage: StorageConfig,
    store: JobStore | None = None,
    max_age_hours: float = 24.0,
) -> int:
    """Remove stale inputs, undownloaded results and temp record files.

    Args:
        storage: Storage layout to clean.
        store: When given, the record of each removed result is deleted too,
            so the job reports not-found instead of an unreadable artifact.
        max_age_hours: Only clean files older than this.

    Returns:
        Number of files cleaned up.
    """
    cleaned = 0
    cutoff_time = time.time() - (max_age_hours * 3600)

    targets = [
        (storage.inputs_dir, "input_*.tmp"),
        (storage.results_dir, "*.webm"),
        (storage.jobs_dir, ".*.tmp"),
    ]

    for directory, pattern in targets:
        if not directory.exists():
            continue

        for path in directory.glob(pattern):
            try:
                if not _is_stale(path, cutoff_time):
                    continue
                path.unlink()
            except OSError as e:
                logger.warning("Could not clean orphaned file %s: %s", path, e)
                continue

            logger.info("Cleaned orphaned file: %s", path)
            cleaned += 1
            if store is not None and directory == storage.results_dir:
                store.delete(path.stem)

    return cleaned
