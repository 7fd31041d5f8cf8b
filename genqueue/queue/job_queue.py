"""
Job queue façade.

A JobQueue is a durable, named FIFO channel of jobs backed by the queue_jobs
table. Callers add jobs and read status; workers claim jobs and record
progress and outcomes. Every transition is published on the queue's event
stream after it is committed.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Protocol

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from genqueue.config import Settings, get_settings
from genqueue.constants import PENDING_STATES, PROGRESS_MAX, PROGRESS_MIN, JobState
from genqueue.db.connection import session_scope
from genqueue.db.repository import JobRepository
from genqueue.exceptions import ConflictError
from genqueue.observability.metrics import get_metrics
from genqueue.queue.events import QueueEvents
from genqueue.queue.status import StatusProjector
from genqueue.types.events import QueueEvent
from genqueue.types.job import Job, JobOptions, JobStatusView
from genqueue.utils import now_ms, utcnow

logger = logging.getLogger(__name__)


class JobAddedListener(Protocol):
    async def ensure_running(self) -> None: ...


class JobQueue:
    """
    Durable named queue of jobs.

    Features:
    - One pending job per subject, checked before insertion
    - Direct notification of the queue's lifecycle manager on add
    - FIFO claiming with delayed-job promotion
    - Retention sweep after every terminal transition
    """

    def __init__(
        self,
        name: str,
        session_factory: async_sessionmaker[AsyncSession],
        job_name: str,
        job_id_prefix: str,
        settings: Settings | None = None,
        work_label: str | None = None,
    ):
        """
        Initialize the queue.

        Args:
            name: Queue name, one per job type.
            session_factory: Factory for database sessions.
            job_name: Name stored on every job of this queue.
            job_id_prefix: Prefix of generated job ids.
            settings: Optional settings override.
            work_label: Subject of the conflict message, e.g. "An encyclopedia generation".
        """
        self.name = name
        self.job_name = job_name
        self.job_id_prefix = job_id_prefix
        self.work_label = work_label or f"A {job_id_prefix} job"
        self.events = QueueEvents(name)

        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._status = StatusProjector(name, session_factory)
        self._metrics = get_metrics()
        self._add_lock = asyncio.Lock()
        self._last_timestamp = 0
        self._listener: JobAddedListener | None = None

        logger.info("Queue initialized", extra={"queue": name})

    def register_listener(self, listener: JobAddedListener) -> None:
        """
        Register the component to notify when a job is added.

        Args:
            listener: Usually the queue's WorkerLifecycleManager.
        """
        self._listener = listener

    def _next_job_id(self, subject_id: str) -> str:
        timestamp = max(now_ms(), self._last_timestamp + 1)
        self._last_timestamp = timestamp
        return f"{self.job_id_prefix}-{subject_id}-{timestamp}"

    async def add(
        self,
        subject_id: str,
        payload: dict[str, Any] | BaseModel,
        options: JobOptions | None = None,
    ) -> str:
        """
        Add a job for a subject of work.

        Args:
            subject_id: The subject the job operates on.
            payload: Job data; subject_id is always stored in it.
            options: Optional enqueue options.

        Returns:
            The new job id.

        Raises:
            ConflictError: If a waiting, active or delayed job already
                exists for the subject in this queue.
        """
        options = options or JobOptions()
        data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else dict(payload)
        data["subject_id"] = subject_id

        delay_until = None
        if options.delay_seconds > 0:
            delay_until = utcnow() + timedelta(seconds=options.delay_seconds)

        async with self._add_lock:
            async with session_scope(self._session_factory) as session:
                repo = JobRepository(session)

                existing = await repo.find_pending_for_subject(self.name, subject_id)
                if existing is not None:
                    logger.info(
                        "Found existing job for subject",
                        extra={
                            "queue": self.name,
                            "subject_id": subject_id,
                            "job_id": existing.job_id,
                            "state": existing.state,
                        },
                    )
                    raise ConflictError(
                        f"{self.work_label} is already in progress "
                        f"for this subject. Job ID: {existing.job_id}",
                        existing_job_id=existing.job_id,
                    )

                job_id = self._next_job_id(subject_id)
                await repo.create_job(
                    queue_name=self.name,
                    job_id=job_id,
                    name=self.job_name,
                    subject_id=subject_id,
                    payload=data,
                    delay_until=delay_until,
                )

        self._metrics.record_job_enqueued(self.name)
        self.events.emit(
            QueueEvent.job_waiting(self.name, job_id, delayed=delay_until is not None)
        )

        logger.info(
            "Job added",
            extra={"queue": self.name, "subject_id": subject_id, "job_id": job_id},
        )

        await self.notify_job_added()
        return job_id

    async def notify_job_added(self) -> None:
        """Tell the registered listener that work is available."""
        if self._listener is not None:
            await self._listener.ensure_running()

    async def get_job(self, job_id: str) -> Job | None:
        """
        Get a job by id.

        Args:
            job_id: The job identifier.

        Returns:
            The Job or None if unknown or purged.
        """
        async with session_scope(self._session_factory) as session:
            record = await JobRepository(session).get_job(job_id)

        if record is None or record.queue_name != self.name:
            return None
        return Job.from_record(record, queue=self)

    async def get_counts(self) -> dict[JobState, int]:
        """Get the number of jobs in every state partition."""
        async with session_scope(self._session_factory) as session:
            return await JobRepository(session).count_by_state(self.name)

    async def has_pending_jobs(self) -> bool:
        """Check if any job is waiting, active or delayed."""
        counts = await self.get_counts()
        return any(counts[state] > 0 for state in PENDING_STATES)

    async def status_for(self, subject_id: str) -> JobStatusView:
        """
        Get the current job status for a subject.

        Args:
            subject_id: The subject of work.
        """
        return await self._status.status_for(subject_id)

    async def status_for_job(self, job_id: str) -> JobStatusView:
        """Get the status of a specific job."""
        return await self._status.status_for_job(job_id)

    async def claim_next(self) -> Job | None:
        """
        Claim the oldest waiting job, promoting due delayed jobs first.

        Returns:
            The claimed Job, now active, or None if nothing is waiting.
        """
        async with session_scope(self._session_factory) as session:
            repo = JobRepository(session)
            await repo.promote_delayed(self.name)
            record = await repo.claim_next(self.name)

        if record is None:
            return None

        self.events.emit(QueueEvent.job_active(self.name, record.job_id))
        return Job.from_record(record, queue=self)

    async def seconds_until_next_delayed(self) -> float | None:
        """
        Time until the earliest delayed job is due.

        Returns:
            Seconds (never negative) or None when nothing is delayed.
        """
        async with session_scope(self._session_factory) as session:
            due = await JobRepository(session).next_delay_until(self.name)

        if due is None:
            return None
        return max(0.0, (due - utcnow()).total_seconds())

    async def update_progress(self, job_id: str, progress: float, current: int = 0) -> int:
        """
        Record progress for an active job.

        Args:
            job_id: The job identifier.
            progress: New value; clamped to 0..100 and rounded.
            current: Last value reported by the caller.

        Returns:
            The progress value now in effect.
        """
        value = int(round(min(max(progress, PROGRESS_MIN), PROGRESS_MAX)))
        if value < current:
            logger.debug(
                "Ignoring decreasing progress",
                extra={"job_id": job_id, "progress": value, "current": current},
            )
            return current

        async with session_scope(self._session_factory) as session:
            updated = await JobRepository(session).update_progress(job_id, value)

        if not updated:
            return current

        if value != current:
            self.events.emit(QueueEvent.job_progress(self.name, job_id, value))
        return value

    async def complete(self, job: Job, result: dict[str, Any] | BaseModel | None) -> None:
        """
        Mark an active job completed and store its result.

        Args:
            job: The job.
            result: The processor's return value.
        """
        data = result.model_dump(mode="json") if isinstance(result, BaseModel) else result

        async with session_scope(self._session_factory) as session:
            repo = JobRepository(session)
            record = await repo.complete_job(job.job_id, data)
            if record is not None:
                await self._apply_retention(repo)

        if record is None:
            logger.warning(
                "Job was no longer active when completing",
                extra={"queue": self.name, "job_id": job.job_id},
            )
            return

        job.state = JobState.COMPLETED
        job.result = data
        self.events.emit(QueueEvent.job_completed(self.name, job.job_id, data))

    async def fail(self, job: Job, reason: str) -> None:
        """
        Mark an active job failed.

        Args:
            job: The job.
            reason: Human-readable failure reason.
        """
        async with session_scope(self._session_factory) as session:
            repo = JobRepository(session)
            record = await repo.fail_job(job.job_id, reason)
            if record is not None:
                await self._apply_retention(repo)

        if record is None:
            logger.warning(
                "Job was no longer active when failing",
                extra={"queue": self.name, "job_id": job.job_id},
            )
            return

        job.state = JobState.FAILED
        job.failure_reason = reason
        self.events.emit(QueueEvent.job_failed(self.name, job.job_id, reason))

    async def _apply_retention(self, repo: JobRepository) -> None:
        await repo.apply_retention(
            self.name,
            completed_max_age_seconds=self._settings.completed_retention_age_seconds,
            completed_max_count=self._settings.completed_retention_count,
            failed_max_age_seconds=self._settings.failed_retention_age_seconds,
        )
