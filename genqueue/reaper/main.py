"""
Stalled job reaper.

A process that exits while a job is running leaves that job active forever:
nothing requeues it, and the subject stays blocked for new jobs. The reaper
finds active jobs older than the configured timeout and fails them, so the
subject unblocks and callers can resubmit. Stalled jobs are never requeued.
"""

import logging
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from genqueue.config import Settings, get_settings
from genqueue.db.connection import session_scope
from genqueue.db.repository import JobRepository
from genqueue.queue.job_queue import JobQueue
from genqueue.types.job import Job
from genqueue.utils import utcnow

logger = logging.getLogger(__name__)


def stalled_reason(job: Job) -> str:
    """Failure reason recorded on a reaped job."""
    since = job.processed_at.isoformat() if job.processed_at else "unknown"
    return f"Job stalled: no progress since {since}"


class StalledJobReaper:
    """
    Fails jobs left active by a previous process.

    Disabled unless stalled_job_timeout_seconds is set. Runs once at
    startup, before the lifecycle managers reconcile their queues.
    """

    def __init__(
        self,
        queues: list[JobQueue],
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            queues: Queues whose stalled jobs are failed.
            session_factory: Factory for database sessions.
            settings: Optional settings override.
        """
        settings = settings or get_settings()
        self.timeout = settings.stalled_job_timeout_seconds
        self._queues = {queue.name: queue for queue in queues}
        self._session_factory = session_factory

    @property
    def enabled(self) -> bool:
        return self.timeout is not None

    async def run_once(self) -> int:
        """
        Fail every stalled job once.

        Jobs are failed through their queue so completion waiters and
        retention see the transition.

        Returns:
            Number of jobs failed.
        """
        if not self.enabled:
            return 0

        cutoff = utcnow() - timedelta(seconds=self.timeout)

        async with session_scope(self._session_factory) as session:
            records = await JobRepository(session).find_stalled(cutoff)

        reaped = 0
        for record in records:
            queue = self._queues.get(record.queue_name)
            if queue is None:
                continue

            job = Job.from_record(record, queue=queue)
            reason = stalled_reason(job)
            await queue.fail(job, reason)
            reaped += 1

            logger.warning(
                "Failed stalled job",
                extra={"job_id": job.job_id, "queue": queue.name, "error": reason},
            )

        if reaped > 0:
            logger.info(f"Failed {reaped} stalled jobs")

        return reaped
