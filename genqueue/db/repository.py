"""
Job repository for database operations.
Implements the data access patterns behind every named queue.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Sequence

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from genqueue.constants import PENDING_STATES, JobState
from genqueue.db.models import QueueJob
from genqueue.utils import utcnow

logger = logging.getLogger(__name__)


class JobRepository:
    """
    Repository for queue job database operations.

    Implements atomic operations for:
    - Job insertion and pending-job lookup per subject
    - FIFO claiming of the next waiting job
    - Progress updates and terminal transitions
    - Retention sweeps of completed and failed jobs
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def create_job(
        self,
        queue_name: str,
        job_id: str,
        name: str,
        subject_id: str,
        payload: dict[str, Any],
        delay_until: datetime | None = None,
    ) -> QueueJob:
        """
        Insert a new job.

        Args:
            queue_name: The queue the job belongs to.
            job_id: Unique job identifier.
            name: Job type name.
            subject_id: The subject of work.
            payload: The job payload.
            delay_until: If set, the job starts delayed until this time.

        Returns:
            The created QueueJob.
        """
        job = QueueJob(
            job_id=job_id,
            queue_name=queue_name,
            name=name,
            subject_id=subject_id,
            payload=payload,
            state=JobState.DELAYED if delay_until else JobState.WAITING,
            progress=0,
            attempts_made=0,
            delay_until=delay_until,
            created_at=utcnow(),
        )
        self._session.add(job)
        await self._session.flush()

        logger.info(
            "Created job",
            extra={"job_id": job_id, "queue": queue_name, "subject_id": subject_id},
        )
        return job

    async def get_job(self, job_id: str) -> QueueJob | None:
        """
        Get a job by its identifier.

        Args:
            job_id: The job identifier.

        Returns:
            The QueueJob or None if not found.
        """
        stmt = select(QueueJob).where(QueueJob.job_id == job_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_latest_for_subject(
        self,
        queue_name: str,
        subject_id: str,
        state: JobState,
    ) -> QueueJob | None:
        """
        Get the most recent job for a subject in one state partition.

        Args:
            queue_name: The queue name.
            subject_id: The subject of work.
            state: The partition to look in.

        Returns:
            The newest matching QueueJob or None.
        """
        stmt = (
            select(QueueJob)
            .where(
                and_(
                    QueueJob.queue_name == queue_name,
                    QueueJob.subject_id == subject_id,
                    QueueJob.state == state,
                )
            )
            .order_by(QueueJob.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_pending_for_subject(
        self,
        queue_name: str,
        subject_id: str,
    ) -> QueueJob | None:
        """
        Find a non-terminal job for a subject.

        Partitions are scanned in order: active, waiting, delayed.

        Args:
            queue_name: The queue name.
            subject_id: The subject of work.

        Returns:
            The first pending QueueJob found or None.
        """
        for state in PENDING_STATES:
            job = await self.find_latest_for_subject(queue_name, subject_id, state)
            if job is not None:
                return job
        return None

    async def count_by_state(self, queue_name: str) -> dict[JobState, int]:
        """
        Count jobs in each state partition of a queue.

        Args:
            queue_name: The queue name.

        Returns:
            Dictionary of state -> count, with every state present.
        """
        stmt = (
            select(QueueJob.state, func.count())
            .where(QueueJob.queue_name == queue_name)
            .group_by(QueueJob.state)
        )
        result = await self._session.execute(stmt)

        counts = {state: 0 for state in JobState}
        for state, count in result.all():
            counts[JobState(state)] = count
        return counts

    async def promote_delayed(self, queue_name: str) -> int:
        """
        Move delayed jobs whose delay has elapsed to waiting.

        Args:
            queue_name: The queue name.

        Returns:
            Number of promoted jobs.
        """
        stmt = (
            update(QueueJob)
            .where(
                and_(
                    QueueJob.queue_name == queue_name,
                    QueueJob.state == JobState.DELAYED,
                    QueueJob.delay_until <= utcnow(),
                )
            )
            .values(state=JobState.WAITING, delay_until=None)
        )
        result = await self._session.execute(stmt)
        count = result.rowcount

        if count > 0:
            logger.info(
                f"Promoted {count} delayed jobs",
                extra={"queue": queue_name},
            )

        return count

    async def next_delay_until(self, queue_name: str) -> datetime | None:
        """
        Get the earliest time a delayed job becomes due.

        Args:
            queue_name: The queue name.

        Returns:
            The earliest delay_until or None when nothing is delayed.
        """
        stmt = select(func.min(QueueJob.delay_until)).where(
            and_(
                QueueJob.queue_name == queue_name,
                QueueJob.state == JobState.DELAYED,
            )
        )
        result = await self._session.execute(stmt)
        return result.scalar()

    async def claim_next(self, queue_name: str) -> QueueJob | None:
        """
        Move the oldest waiting job to active.

        The conditional update only succeeds if the job is still waiting,
        so two claimers never receive the same job.

        Args:
            queue_name: The queue name.

        Returns:
            The claimed QueueJob or None if the queue has no waiting jobs.
        """
        while True:
            candidate_stmt = (
                select(QueueJob.id)
                .where(
                    and_(
                        QueueJob.queue_name == queue_name,
                        QueueJob.state == JobState.WAITING,
                    )
                )
                .order_by(QueueJob.id.asc())
                .limit(1)
            )
            candidate_id = (await self._session.execute(candidate_stmt)).scalar()
            if candidate_id is None:
                return None

            stmt = (
                update(QueueJob)
                .where(
                    and_(
                        QueueJob.id == candidate_id,
                        QueueJob.state == JobState.WAITING,
                    )
                )
                .values(
                    state=JobState.ACTIVE,
                    processed_at=utcnow(),
                    attempts_made=QueueJob.attempts_made + 1,
                )
                .returning(QueueJob)
            )
            result = await self._session.execute(stmt)
            job = result.scalar_one_or_none()

            if job is not None:
                logger.info(
                    "Claimed job",
                    extra={"job_id": job.job_id, "queue": queue_name},
                )
                return job

    async def update_progress(self, job_id: str, progress: int) -> bool:
        """
        Record progress for an active job.

        Progress never moves backwards; a lower value is ignored.

        Args:
            job_id: The job identifier.
            progress: New progress value.

        Returns:
            True if the stored progress changed or stayed equal.
        """
        stmt = (
            update(QueueJob)
            .where(
                and_(
                    QueueJob.job_id == job_id,
                    QueueJob.state == JobState.ACTIVE,
                    QueueJob.progress <= progress,
                )
            )
            .values(progress=progress)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def complete_job(
        self,
        job_id: str,
        result: dict[str, Any] | None = None,
    ) -> QueueJob | None:
        """
        Mark an active job as completed.

        Args:
            job_id: The job identifier.
            result: The job result data.

        Returns:
            Updated QueueJob or None if the job was not active.
        """
        stmt = (
            update(QueueJob)
            .where(
                and_(
                    QueueJob.job_id == job_id,
                    QueueJob.state == JobState.ACTIVE,
                )
            )
            .values(
                state=JobState.COMPLETED,
                finished_at=utcnow(),
                result=result,
            )
            .returning(QueueJob)
        )

        result_obj = await self._session.execute(stmt)
        job = result_obj.scalar_one_or_none()

        if job:
            logger.info(
                "Job completed",
                extra={"job_id": job_id, "queue": job.queue_name},
            )

        return job

    async def fail_job(self, job_id: str, reason: str) -> QueueJob | None:
        """
        Mark an active job as failed.

        Args:
            job_id: The job identifier.
            reason: Human-readable failure reason.

        Returns:
            Updated QueueJob or None if the job was not active.
        """
        stmt = (
            update(QueueJob)
            .where(
                and_(
                    QueueJob.job_id == job_id,
                    QueueJob.state == JobState.ACTIVE,
                )
            )
            .values(
                state=JobState.FAILED,
                finished_at=utcnow(),
                failure_reason=reason,
            )
            .returning(QueueJob)
        )

        result = await self._session.execute(stmt)
        job = result.scalar_one_or_none()

        if job:
            logger.warning(
                "Job failed",
                extra={"job_id": job_id, "queue": job.queue_name, "error": reason},
            )

        return job

    async def find_stalled(self, older_than: datetime) -> Sequence[QueueJob]:
        """
        Find active jobs that started before a cutoff.

        Args:
            older_than: Jobs processed before this time are returned.

        Returns:
            Matching jobs in FIFO order.
        """
        stmt = (
            select(QueueJob)
            .where(
                and_(
                    QueueJob.state == JobState.ACTIVE,
                    QueueJob.processed_at < older_than,
                )
            )
            .order_by(QueueJob.id.asc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def apply_retention(
        self,
        queue_name: str,
        completed_max_age_seconds: int,
        completed_max_count: int,
        failed_max_age_seconds: int,
    ) -> int:
        """
        Delete terminal jobs outside the retention window.

        Completed jobs are bounded by age and by count (newest kept);
        failed jobs are bounded by age only.

        Args:
            queue_name: The queue name.
            completed_max_age_seconds: Maximum age of completed jobs.
            completed_max_count: Number of newest completed jobs to keep.
            failed_max_age_seconds: Maximum age of failed jobs.

        Returns:
            Number of deleted jobs.
        """
        now = utcnow()
        removed = 0

        completed_cutoff = now - timedelta(seconds=completed_max_age_seconds)
        result = await self._session.execute(
            delete(QueueJob).where(
                and_(
                    QueueJob.queue_name == queue_name,
                    QueueJob.state == JobState.COMPLETED,
                    QueueJob.finished_at <= completed_cutoff,
                )
            )
        )
        removed += result.rowcount

        keep_stmt = (
            select(QueueJob.id)
            .where(
                and_(
                    QueueJob.queue_name == queue_name,
                    QueueJob.state == JobState.COMPLETED,
                )
            )
            .order_by(QueueJob.finished_at.desc(), QueueJob.id.desc())
            .offset(completed_max_count)
        )
        overflow_ids = (await self._session.execute(keep_stmt)).scalars().all()
        if overflow_ids:
            result = await self._session.execute(
                delete(QueueJob).where(QueueJob.id.in_(overflow_ids))
            )
            removed += result.rowcount

        failed_cutoff = now - timedelta(seconds=failed_max_age_seconds)
        result = await self._session.execute(
            delete(QueueJob).where(
                and_(
                    QueueJob.queue_name == queue_name,
                    QueueJob.state == JobState.FAILED,
                    QueueJob.finished_at <= failed_cutoff,
                )
            )
        )
        removed += result.rowcount

        if removed > 0:
            logger.info(
                f"Removed {removed} jobs past retention",
                extra={"queue": queue_name},
            )

        return removed

