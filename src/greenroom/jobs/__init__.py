"""Conversion jobs: records, durable store, progress monitors, orchestration."""

from greenroom.jobs.exceptions import (
    ArtifactReadError,
    InvalidJobIdError,
    JobExistsError,
    JobStateError,
    JobStoreError,
    UploadTooLargeError,
)
from greenroom.jobs.models import ConversionOptions, JobRecord, JobStatus
from greenroom.jobs.orchestrator import JobOrchestrator, Retrieval, RetrievalStatus
from greenroom.jobs.progress import (
    ProgressMonitor,
    SizeGrowthMonitor,
    StreamProgressMonitor,
    create_progress_monitor,
)
from greenroom.jobs.store import JobStore

__all__ = [
    "ArtifactReadError",
    "ConversionOptions",
    "InvalidJobIdError",
    "JobExistsError",
    "JobOrchestrator",
    "JobRecord",
    "JobStateError",
    "JobStatus",
    "JobStore",
    "JobStoreError",
    "ProgressMonitor",
    "Retrieval",
    "RetrievalStatus",
    "SizeGrowthMonitor",
    "StreamProgressMonitor",
    "UploadTooLargeError",
    "create_progress_monitor",
]
