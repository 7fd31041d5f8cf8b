"""
Caller-facing queue services.

Thin typed entry points over the two queues: validate the payload, add the
job, and expose status lookups.
"""

import logging

from genqueue.constants import SPAN_ENQUEUE_JOB
from genqueue.observability.tracing import get_tracer
from genqueue.queue.job_queue import JobQueue
from genqueue.types.job import (
    EncyclopediaJobData,
    Job,
    JobOptions,
    JobStatusView,
    SolutionsJobData,
)

logger = logging.getLogger(__name__)


class QueueService:
    """Status lookups shared by both services."""

    def __init__(self, queue: JobQueue):
        self.queue = queue

    async def status_for(self, subject_id: str) -> JobStatusView:
        """
        Get the status of the latest job for a subject.

        Args:
            subject_id: The subject of work.

        Returns:
            The status view; status is NONE when no job is on record.
        """
        return await self.queue.status_for(subject_id)

    async def get_job(self, job_id: str) -> Job | None:
        """Get a job by id, or None if unknown or purged."""
        return await self.queue.get_job(job_id)


class EncyclopediaQueueService(QueueService):
    async def add_encyclopedia_job(
        self,
        subject_id: str,
        selected_files: list[str] | None = None,
        delay_seconds: float = 0,
    ) -> str:
        """
        Queue encyclopedia generation for a subject.

        Args:
            subject_id: The subject of work.
            selected_files: Optional file names passed to generation.
            delay_seconds: Hold the job back this long before it can run.

        Returns:
            The new job id.

        Raises:
            ConflictError: If a generation is already queued or running.
        """
        data = EncyclopediaJobData(subject_id=subject_id, selected_files=selected_files)

        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
            span.set_attribute("queue", self.queue.name)
            span.set_attribute("subject_id", subject_id)

            job_id = await self.queue.add(
                subject_id, data, JobOptions(delay_seconds=delay_seconds)
            )
            span.set_attribute("job_id", job_id)

        logger.info(f"Encyclopedia job {job_id} queued for subject {subject_id}")
        return job_id


class SolutionsQueueService(QueueService):
    async def add_solutions_job(
        self,
        subject_id: str,
        user_id: str,
        organization_id: str | None = None,
    ) -> str:
        """
        Queue solutions generation for a subject.

        Args:
            subject_id: The subject of work.
            user_id: The requesting user.
            organization_id: Optional organization of the subject.

        Returns:
            The new job id.

        Raises:
            ConflictError: If a generation is already queued or running.
        """
        data = SolutionsJobData(
            subject_id=subject_id,
            user_id=user_id,
            organization_id=organization_id,
        )

        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
            span.set_attribute("queue", self.queue.name)
            span.set_attribute("subject_id", subject_id)

            job_id = await self.queue.add(subject_id, data)
            span.set_attribute("job_id", job_id)

        logger.info(f"Solutions job {job_id} queued for subject {subject_id}")
        return job_id
