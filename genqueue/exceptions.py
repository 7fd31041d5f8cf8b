"""
Exception hierarchy for the job processing core.
"""


class JobQueueError(Exception):
    """Base class for all job queue errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConflictError(JobQueueError):
    """A non-terminal job already exists for the subject in this queue."""

    def __init__(self, message: str, existing_job_id: str | None = None):
        self.existing_job_id = existing_job_id
        super().__init__(message)


class NotFoundError(JobQueueError):
    """The subject of work or the job id is unknown."""


class UpstreamFailure(JobQueueError):
    """An external capability (generation, storage) failed."""

    def __init__(self, message: str, capability: str | None = None):
        self.capability = capability
        super().__init__(message)


class JobFailedError(JobQueueError):
    """An awaited job reached the failed state."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(reason)


class DependencyTimeoutError(JobQueueError):
    """Waiting for a dependency job exceeded its bound."""

    def __init__(self, job_id: str, timeout: float):
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for job {job_id}")


class DependencyFailure(JobQueueError):
    """A job this job depends on failed or did not finish in time."""

    def __init__(self, message: str, dependency_job_id: str | None = None):
        self.dependency_job_id = dependency_job_id
        super().__init__(message)
