"""Custom exceptions for job processing.

Specific exception types let the HTTP layer map each failure to the right
status code while callers can still catch GreenroomError as a whole.
"""

from greenroom.exceptions import GreenroomError


class JobStoreError(GreenroomError):
    """Raised when a job record cannot be created or persisted.

    Attributes:
        job_id: The ID of the affected job.
    """

    def __init__(self, job_id: str, message: str) -> None:
        self.job_id = job_id
        super().__init__(message)


class JobExistsError(JobStoreError):
    """Raised when creating a record for a job id that is already in use."""

    def __init__(self, job_id: str) -> None:
        super().__init__(job_id, f"Job {job_id} already exists")


class JobStateError(GreenroomError):
    """Raised on a status transition out of a terminal state."""


class InvalidJobIdError(GreenroomError):
    """Raised when a caller-supplied job id is not a safe file-name token."""


class UploadTooLargeError(GreenroomError):
    """Raised when an upload exceeds the configured size limit.

    Attributes:
        limit_bytes: The configured maximum upload size.
    """

    def __init__(self, limit_bytes: int) -> None:
        self.limit_bytes = limit_bytes
        super().__init__(f"Upload exceeds the {limit_bytes} byte limit")


class ArtifactReadError(GreenroomError):
    """Raised when a finished artifact exists in the record but cannot be read."""
