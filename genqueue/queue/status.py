"""
Status projection for subjects of work.

Answers "what is the state of the job for subject K" by reading the queue's
state partitions. Holds no state of its own.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from genqueue.constants import JobState, JobStatus
from genqueue.db.connection import session_scope
from genqueue.db.models import QueueJob
from genqueue.db.repository import JobRepository
from genqueue.types.job import JobStatusView


class StatusProjector:
    """
    Read-only status view over one queue.

    Lookup order is pending (active, waiting, delayed), then completed, then
    failed. An in-flight job always wins over older terminal records that
    retention has not purged yet.
    """

    def __init__(
        self,
        queue_name: str,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.queue_name = queue_name
        self._session_factory = session_factory

    async def status_for(self, subject_id: str) -> JobStatusView:
        """
        Get the current job status for a subject.

        Args:
            subject_id: The subject of work.

        Returns:
            The status view; status NONE when no job is on record.
        """
        async with session_scope(self._session_factory) as session:
            repo = JobRepository(session)

            job = await repo.find_pending_for_subject(self.queue_name, subject_id)
            if job is None:
                job = await repo.find_latest_for_subject(
                    self.queue_name, subject_id, JobState.COMPLETED
                )
            if job is None:
                job = await repo.find_latest_for_subject(
                    self.queue_name, subject_id, JobState.FAILED
                )

        if job is None:
            return JobStatusView.none()

        return to_status_view(job)

    async def status_for_job(self, job_id: str) -> JobStatusView:
        """
        Get the status of a specific job.

        Args:
            job_id: The job identifier.

        Returns:
            The status view; status NONE if the job is unknown or was purged.
        """
        async with session_scope(self._session_factory) as session:
            job = await JobRepository(session).get_job(job_id)

        if job is None or job.queue_name != self.queue_name:
            return JobStatusView.none()

        return to_status_view(job)


def to_status_view(job: QueueJob) -> JobStatusView:
    """Convert a job record to its caller-facing status view."""
    state = JobState(job.state)
    view = JobStatusView(
        job_id=job.job_id,
        status=JobStatus(state.value),
        progress=job.progress,
        created_at=job.created_at,
        processed_at=job.processed_at,
        finished_at=job.finished_at,
    )

    if state == JobState.COMPLETED and job.result is not None:
        view.result = job.result

    if state == JobState.FAILED:
        view.error = job.failure_reason or "Job failed without error message"
        view.failed_reason = job.failure_reason

    return view
