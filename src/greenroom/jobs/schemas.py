"""Pydantic schema for persisted job records.

Documents that fail validation are treated as corrupt by the store.

Usage:
    result = parse_json_with_schema(raw, JobRecordSchema, context=job_id)
    if result.success and result.value:
        record = result.value.to_record()
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from greenroom.jobs.models import PROGRESS_COMPLETE, JobRecord, JobStatus


class JobRecordSchema(BaseModel):
    """Schema for `<jobs_dir>/<job_id>.json` documents."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    status: JobStatus
    progress: int = Field(ge=0, le=100)
    result_path: str | None = None
    detected_color: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def check_status_invariants(self) -> JobRecordSchema:
        complete = self.status is JobStatus.COMPLETE
        if complete != (self.progress == PROGRESS_COMPLETE):
            raise ValueError("progress is 100 exactly when status is complete")
        if complete != bool(self.result_path):
            raise ValueError("result_path is set exactly when status is complete")
        if (self.status is JobStatus.FAILED) != bool(self.error):
            raise ValueError("error is set exactly when status is failed")
        return self

    def to_record(self) -> JobRecord:
        return JobRecord(
            id=self.id,
            status=self.status,
            progress=self.progress,
            result_path=self.result_path,
            detected_color=self.detected_color,
            error=self.error,
        )
