"""Job data types: conversion options, status and the job record.

JobRecord is immutable. Every transition returns a new record, which the
store persists as one JSON document.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from greenroom.config.env import parse_bool
from greenroom.jobs.exceptions import JobStateError

logger = logging.getLogger(__name__)

QUALITY_MIN = 0
QUALITY_MAX = 63
DEFAULT_QUALITY = 30
DEFAULT_AUDIO_BITRATE = "128k"

# Progress values for the fixed orchestration phases
PROGRESS_CREATED = 5
PROGRESS_DETECTING = 20
PROGRESS_ENCODING = 30
PROGRESS_MAX_RUNNING = 99
PROGRESS_COMPLETE = 100


def clamp_quality(value: Any) -> int:
    """Coerce a raw quality value into the valid CRF range.

    Out-of-range numbers are clamped; values that are not integers fall
    back to DEFAULT_QUALITY.
    """
    try:
        quality = int(str(value).strip())
    except (TypeError, ValueError):
        logger.debug("Unparseable quality %r, using default", value)
        return DEFAULT_QUALITY
    return max(QUALITY_MIN, min(QUALITY_MAX, quality))


@dataclass(frozen=True)
class ConversionOptions:
    """Per-job encoder options.

    Attributes:
        quality: VP9 constant rate factor (0-63, lower is better quality).
        audio_bitrate: Opus bitrate token passed to the encoder unchanged.
        detect_background: Run chroma-key color detection before encoding.
    """

    quality: int = DEFAULT_QUALITY
    audio_bitrate: str = DEFAULT_AUDIO_BITRATE
    detect_background: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "quality", clamp_quality(self.quality))
        if not str(self.audio_bitrate).strip():
            object.__setattr__(self, "audio_bitrate", DEFAULT_AUDIO_BITRATE)

    @classmethod
    def from_fields(cls, fields: Mapping[str, str]) -> ConversionOptions:
        """Build options from raw form fields.

        Accepts `quality` or `crf`, `audio_bitrate`, and `detect_background`
        or `detect_green`. Missing fields take their defaults.
        """
        quality = fields.get("quality", fields.get("crf"))
        bitrate = fields.get("audio_bitrate")
        detect = fields.get("detect_background", fields.get("detect_green"))
        return cls(
            quality=clamp_quality(quality) if quality is not None else DEFAULT_QUALITY,
            audio_bitrate=bitrate.strip() if bitrate else DEFAULT_AUDIO_BITRATE,
            detect_background=parse_bool(detect) if detect is not None else False,
        )


class JobStatus(Enum):
    """Status of a conversion job."""

    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class JobRecord:
    """Persisted state of one conversion job.

    Invariants: progress is 100 exactly when status is COMPLETE, which is
    exactly when result_path is set; error is set exactly when status is
    FAILED; terminal records never change.
    """

    id: str
    status: JobStatus = JobStatus.PROCESSING
    progress: int = PROGRESS_CREATED
    result_path: str | None = None
    detected_color: str | None = None
    error: str | None = None

    @classmethod
    def new(cls, job_id: str) -> JobRecord:
        """Initial record for an accepted job."""
        return cls(id=job_id)

    @property
    def is_terminal(self) -> bool:
        return self.status is not JobStatus.PROCESSING

    def with_progress(self, progress: int) -> JobRecord:
        """Raise progress, never lowering it and never reaching 100.

        Terminal records are returned unchanged.
        """
        if self.is_terminal:
            return self
        progress = min(int(progress), PROGRESS_MAX_RUNNING)
        if progress <= self.progress:
            return self
        return replace(self, progress=progress)

    def with_detected_color(self, color: str | None) -> JobRecord:
        if self.is_terminal:
            return self
        return replace(self, detected_color=color)

    def completed(self, result_path: str) -> JobRecord:
        """Transition to COMPLETE.

        Raises:
            JobStateError: If the record is already terminal.
        """
        if self.is_terminal:
            raise JobStateError(
                f"Job {self.id} is already {self.status.value}, cannot complete"
            )
        if not result_path:
            raise JobStateError(f"Job {self.id} cannot complete without a result")
        return replace(
            self,
            status=JobStatus.COMPLETE,
            progress=PROGRESS_COMPLETE,
            result_path=result_path,
            error=None,
        )

    def failed(self, error: str) -> JobRecord:
        """Transition to FAILED.

        Raises:
            JobStateError: If the record is already terminal.
        """
        if self.is_terminal:
            raise JobStateError(
                f"Job {self.id} is already {self.status.value}, cannot fail"
            )
        return replace(
            self,
            status=JobStatus.FAILED,
            result_path=None,
            error=error or "Conversion failed",
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the persisted JSON document shape."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "result_path": self.result_path,
            "detected_color": self.detected_color,
            "error": self.error,
        }
