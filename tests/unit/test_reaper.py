"""
Unit tests for the stalled job reaper.
"""

from datetime import timedelta

from sqlalchemy import update

from genqueue.constants import EVENT_FAILED, JobStatus
from genqueue.db.connection import session_scope
from genqueue.db.models import QueueJob
from genqueue.queue.job_queue import JobQueue
from genqueue.reaper.main import StalledJobReaper
from genqueue.utils import utcnow


async def _backdate(session_factory, job_id: str, seconds: int) -> None:
    async with session_scope(session_factory) as session:
        await session.execute(
            update(QueueJob)
            .where(QueueJob.job_id == job_id)
            .values(processed_at=utcnow() - timedelta(seconds=seconds))
        )


class TestStalledJobReaper:
    """Tests for StalledJobReaper.run_once."""

    async def test_disabled_by_default(self, encyclopedia_queue: JobQueue, session_factory, test_settings):
        """Test that nothing happens without a timeout."""
        reaper = StalledJobReaper([encyclopedia_queue], session_factory, settings=test_settings)

        assert reaper.enabled is False
        assert await reaper.run_once() == 0

    async def test_fails_stalled_jobs(self, encyclopedia_queue: JobQueue, session_factory, test_settings):
        """Test that old active jobs are failed and the subject unblocked."""
        settings = test_settings.model_copy(update={"stalled_job_timeout_seconds": 60})
        reaper = StalledJobReaper([encyclopedia_queue], session_factory, settings=settings)
        events = []
        encyclopedia_queue.events.on(EVENT_FAILED, events.append)

        job_id = await encyclopedia_queue.add("s1", {})
        await encyclopedia_queue.claim_next()
        await _backdate(session_factory, job_id, 120)

        reaped = await reaper.run_once()

        assert reaped == 1
        status = await encyclopedia_queue.status_for("s1")
        assert status.status == JobStatus.FAILED
        assert status.failed_reason.startswith("Job stalled: no progress since ")
        assert [e.job_id for e in events] == [job_id]

        # The subject accepts a new job again
        await encyclopedia_queue.add("s1", {})

    async def test_recent_active_jobs_untouched(
        self, encyclopedia_queue: JobQueue, session_factory, test_settings
    ):
        """Test that jobs younger than the timeout keep running."""
        settings = test_settings.model_copy(update={"stalled_job_timeout_seconds": 60})
        reaper = StalledJobReaper([encyclopedia_queue], session_factory, settings=settings)

        await encyclopedia_queue.add("s1", {})
        await encyclopedia_queue.claim_next()

        assert await reaper.run_once() == 0
        assert (await encyclopedia_queue.status_for("s1")).status == JobStatus.ACTIVE
