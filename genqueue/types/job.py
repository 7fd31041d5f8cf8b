"""
Job-related type definitions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from genqueue.constants import JobState, JobStatus

if TYPE_CHECKING:
    from genqueue.db.models import QueueJob
    from genqueue.queue.job_queue import JobQueue


class JobOptions(BaseModel):
    """Per-job enqueue options."""

    delay_seconds: float = Field(default=0.0, ge=0.0)


class BaseJobData(BaseModel):
    """
    Minimum payload of every job.
    All jobs carry the subject of work they operate on.
    """

    subject_id: str = Field(min_length=1)


class EncyclopediaJobData(BaseJobData):
    """Payload of an encyclopedia generation job."""

    selected_files: list[str] | None = None


class EncyclopediaJobResult(BaseModel):
    """Result of an encyclopedia generation job."""

    encyclopedia: str
    storage_url: str = ""


class SolutionsJobData(BaseJobData):
    """Payload of a solutions generation job."""

    user_id: str
    organization_id: str | None = None


class SolutionsJobResult(BaseModel):
    """Result of a solutions generation job."""

    solutions: list[dict[str, Any]]


class JobStatusView(BaseModel):
    """
    Current state of the job for a subject.
    jobId and timestamps are absent when status is NONE.
    """

    job_id: str | None = None
    status: JobStatus
    progress: int | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    failed_reason: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None
    finished_at: datetime | None = None

    @classmethod
    def none(cls) -> "JobStatusView":
        """No job on record for the subject."""
        return cls(status=JobStatus.NONE)


@dataclass
class Job:
    """
    A job as seen by processors and callers.

    Snapshot of the queue record plus a handle back to its queue so
    processors can report progress.
    """

    job_id: str
    queue_name: str
    name: str
    subject_id: str
    data: dict[str, Any]
    state: JobState
    progress: int = 0
    attempts_made: int = 0
    created_at: datetime | None = None
    processed_at: datetime | None = None
    finished_at: datetime | None = None
    delay_until: datetime | None = None
    result: dict[str, Any] | None = None
    failure_reason: str | None = None
    queue: "JobQueue | None" = field(default=None, repr=False, compare=False)

    @classmethod
    def from_record(cls, record: "QueueJob", queue: "JobQueue | None" = None) -> "Job":
        """Build a Job from its database record."""
        return cls(
            job_id=record.job_id,
            queue_name=record.queue_name,
            name=record.name,
            subject_id=record.subject_id,
            data=dict(record.payload or {}),
            state=JobState(record.state),
            progress=record.progress,
            attempts_made=record.attempts_made,
            created_at=record.created_at,
            processed_at=record.processed_at,
            finished_at=record.finished_at,
            delay_until=record.delay_until,
            result=record.result,
            failure_reason=record.failure_reason,
            queue=queue,
        )

    async def update_progress(self, progress: float) -> None:
        """
        Report progress for this job.

        Args:
            progress: Value between 0 and 100. Lower values than the last
                reported one are ignored.
        """
        if self.queue is None:
            raise RuntimeError(f"Job {self.job_id} is not bound to a queue")
        self.progress = await self.queue.update_progress(self.job_id, progress, self.progress)
