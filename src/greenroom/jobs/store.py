"""Durable job record store.

Each job is one JSON document at `<jobs_dir>/<job_id>.json`. Writes go to a
temporary file in the same directory and are moved into place with
os.replace, so a reader sees either the previous or the next record, never a
partial one. Mutations for one job are serialized by a per-job lock; jobs
never contend with each other.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import weakref
from collections.abc import Callable
from pathlib import Path

from greenroom.core.json_utils import parse_json_with_schema
from greenroom.core.validation import is_valid_job_id
from greenroom.jobs.exceptions import JobExistsError, JobStoreError
from greenroom.jobs.models import JobRecord
from greenroom.jobs.schemas import JobRecordSchema

logger = logging.getLogger(__name__)

RecordMutator = Callable[[JobRecord], "JobRecord | None"]


class JobStore:
    """File-backed mapping from job id to JobRecord.

    Safe to use from the event loop and from worker threads at the same
    time. Only intra-process writers are serialized.
    """

    def __init__(self, jobs_dir: Path) -> None:
        self._jobs_dir = jobs_dir
        # Entries vanish once no caller holds the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = threading.Lock()

    @property
    def jobs_dir(self) -> Path:
        return self._jobs_dir

    def _path(self, job_id: str) -> Path:
        return self._jobs_dir / f"{job_id}.json"

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(job_id)
            if lock is None:
                lock = self._locks[job_id] = threading.Lock()
            return lock

    def _write(self, record: JobRecord) -> None:
        if not is_valid_job_id(record.id):
            raise JobStoreError(record.id, f"Invalid job id: {record.id!r}")

        payload = json.dumps(record.to_dict())
        tmp_name: str | None = None
        try:
            self._jobs_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._jobs_dir, prefix=f".{record.id}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self._path(record.id))
            tmp_name = None
        except OSError as e:
            raise JobStoreError(
                record.id, f"Cannot write record for job {record.id}: {e}"
            ) from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

    def _read(self, job_id: str) -> JobRecord | None:
        if not is_valid_job_id(job_id):
            return None

        path = self._path(job_id)
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cannot read record for job %s: %s", job_id, e)
            return None

        result = parse_json_with_schema(raw, JobRecordSchema, context=str(path))
        if not result.success or result.value is None:
            logger.warning("Ignoring corrupt job record %s: %s", path, result.error)
            return None
        if result.value.id != job_id:
            logger.warning(
                "Ignoring job record %s: contains id %s", path, result.value.id
            )
            return None
        return result.value.to_record()

    def create(self, record: JobRecord) -> None:
        """Persist a new record.

        Raises:
            JobExistsError: If a record with this id already exists.
            JobStoreError: If the record cannot be written.
        """
        with self._lock_for(record.id):
            if self._path(record.id).exists():
                raise JobExistsError(record.id)
            self._write(record)
        logger.debug("Created record for job %s", record.id)

    def load(self, job_id: str) -> JobRecord | None:
        """Return the record, or None if it is missing, unreadable or corrupt."""
        return self._read(job_id)

    def save(self, record: JobRecord) -> None:
        """Overwrite the record for record.id.

        Raises:
            JobStoreError: If the record cannot be written.
        """
        with self._lock_for(record.id):
            self._write(record)

    def update(self, job_id: str, mutate: RecordMutator) -> JobRecord | None:
        """Load, transform and save a record under the job's lock.

        Args:
            job_id: Job to update.
            mutate: Receives the current record and returns the replacement,
                or None to leave the stored record untouched.

        Returns:
            The record now stored, or None if there is no readable record.

        Raises:
            JobStoreError: If the new record cannot be written.
        """
        with self._lock_for(job_id):
            current = self._read(job_id)
            if current is None:
                return None
            updated = mutate(current)
            if updated is None or updated == current:
                return current
            self._write(updated)
            return updated

    def delete(self, job_id: str) -> bool:
        """Remove the record.

        Returns:
            True only for the caller that actually removed it.
        """
        if not is_valid_job_id(job_id):
            return False
        with self._lock_for(job_id):
            try:
                self._path(job_id).unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                logger.warning("Cannot delete record for job %s: %s", job_id, e)
                return False
        logger.debug("Deleted record for job %s", job_id)
        return True
