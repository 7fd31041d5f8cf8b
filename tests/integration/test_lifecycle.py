"""
Integration tests for workers and their on-demand lifecycle.
"""

import asyncio
from typing import Any

import pytest
import pytest_asyncio

from genqueue.constants import EVENT_COMPLETED, JobStatus, WorkerState
from genqueue.processors.base import BaseProcessor
from genqueue.queue.job_queue import JobQueue
from genqueue.types.job import Job
from genqueue.worker.lifecycle import WorkerLifecycleManager
from genqueue.worker.registry import ProcessorRegistry
from genqueue.worker.worker import Worker


class EchoProcessor(BaseProcessor):
    """Returns the payload; raises when the payload asks for it."""

    queue_name = "echo"
    processor_name = "Echo"

    def __init__(self, collaborators, settings=None):
        super().__init__(collaborators, settings=settings)
        self.gate: asyncio.Event | None = None
        self.processed: list[str] = []

    async def process_job(self, job: Job) -> dict[str, Any]:
        if self.gate is not None:
            await self.gate.wait()
        if job.data.get("fail"):
            raise RuntimeError(job.data["fail"])
        await job.update_progress(100)
        self.processed.append(job.job_id)
        return {"echo": job.data}

    async def save_result(self, job: Job, result: Any) -> None:
        return None


@pytest.fixture
def echo_queue(session_factory, test_settings) -> JobQueue:
    return JobQueue("echo", session_factory, "echo-job", "echo", settings=test_settings)


@pytest.fixture
def processor(collaborators, test_settings) -> EchoProcessor:
    return EchoProcessor(collaborators, settings=test_settings)


@pytest_asyncio.fixture
async def manager(echo_queue, processor, test_settings):
    manager = WorkerLifecycleManager(echo_queue, processor, settings=test_settings)
    yield manager
    await manager.stop()


class TestWorker:
    """Tests for Worker without lifecycle management."""

    async def test_processes_jobs_in_fifo_order(self, echo_queue, processor, wait_until):
        """Test that a started worker drains the queue in order."""
        job_ids = [await echo_queue.add(f"s{i}", {}) for i in range(3)]
        worker = Worker(echo_queue, processor.process_job, concurrency=1)
        drained = []
        worker.on("drained", lambda: drained.append(True))

        worker.start()
        try:
            await wait_until(lambda: len(processor.processed) == 3)
            await wait_until(lambda: drained)
        finally:
            await worker.close()

        assert processor.processed == job_ids
        assert worker.closed

    async def test_failed_job_records_reason(self, echo_queue, processor, wait_until):
        """Test that processor exceptions fail the job with their message."""
        await echo_queue.add("s1", {"fail": "Something broke"})
        worker = Worker(echo_queue, processor.process_job)
        failures = []
        worker.on("failed", lambda job, error: failures.append((job.job_id, str(error))))

        worker.start()
        try:
            await wait_until(lambda: failures)
        finally:
            await worker.close()

        status = await echo_queue.status_for("s1")
        assert status.status == JobStatus.FAILED
        assert status.failed_reason == "Something broke"

    async def test_graceful_close_finishes_current_job(self, echo_queue, processor, wait_until):
        """Test that a non-forced close lets the in-flight job complete."""
        processor.gate = asyncio.Event()
        await echo_queue.add("s1", {})
        worker = Worker(echo_queue, processor.process_job)
        worker.start()
        await wait_until(lambda: worker.current_job_ids)

        closing = asyncio.create_task(worker.close())
        await asyncio.sleep(0.05)
        assert not closing.done()
        processor.gate.set()
        await closing

        assert (await echo_queue.status_for("s1")).status == JobStatus.COMPLETED


class TestWorkerLifecycleManager:
    """Tests for on-demand worker start and idle shutdown."""

    async def test_no_worker_without_jobs(self, manager):
        """Test that startup with an empty queue starts nothing."""
        await manager.start()

        assert manager.state == WorkerState.STOPPED
        assert manager.worker is None

    async def test_startup_reconciliation(self, echo_queue, manager, processor, wait_until):
        """Test that jobs left by a previous process are picked up at startup."""
        job_id = await echo_queue.add("s1", {})
        assert manager.worker is None

        await manager.start()

        assert manager.state in (WorkerState.RUNNING, WorkerState.DRAINING)
        await wait_until(lambda: processor.processed == [job_id])

    async def test_add_starts_worker(self, echo_queue, manager, processor, wait_until):
        """Test that adding a job starts a worker on demand."""
        await manager.start()

        job_id = await echo_queue.add("s1", {})

        assert manager.worker is not None
        await wait_until(lambda: processor.processed == [job_id])

    async def test_idle_shutdown(self, echo_queue, manager, processor, wait_until):
        """Test that the worker closes after the idle timeout once drained."""
        await manager.start()
        await echo_queue.add("s1", {})
        worker = manager.worker

        await wait_until(lambda: manager.state == WorkerState.DRAINING)
        assert manager.idle_timer_armed
        await wait_until(lambda: manager.state == WorkerState.STOPPED, timeout=2)

        assert manager.worker is None
        assert worker.closed

    async def test_idle_shutdown_not_before_timeout(
        self, echo_queue, manager, test_settings, wait_until
    ):
        """Test that the worker closes no earlier than the idle timeout after its last job."""
        loop = asyncio.get_running_loop()
        completed_at: list[float] = []
        closed_at: list[float] = []
        echo_queue.events.on(EVENT_COMPLETED, lambda event: completed_at.append(loop.time()))
        await manager.start()

        await echo_queue.add("s1", {})
        manager.worker.on("closed", lambda: closed_at.append(loop.time()))
        await wait_until(lambda: closed_at, timeout=3)

        # asyncio may fire timers up to one clock tick early
        assert closed_at[0] - completed_at[0] >= test_settings.worker_idle_timeout_seconds - 0.01

    async def test_shuts_down_once_orphaned_job_is_resolved(
        self, echo_queue, manager, test_settings, wait_until
    ):
        """Test that a worker kept alive by a job left active still closes after it is failed."""
        await echo_queue.add("s1", {})
        orphan = await echo_queue.claim_next()

        await manager.start()
        assert manager.worker is not None

        await asyncio.sleep(test_settings.worker_idle_timeout_seconds * 3)
        assert manager.worker is not None

        await echo_queue.fail(orphan, "Abandoned by a previous process")

        await wait_until(lambda: manager.state == WorkerState.STOPPED, timeout=3)
        assert manager.worker is None

    async def test_job_during_grace_period_cancels_shutdown(
        self, echo_queue, session_factory, processor, test_settings, wait_until
    ):
        """Test that work arriving while draining keeps the same worker."""
        settings = test_settings.model_copy(update={"worker_idle_timeout_ms": 500})
        manager = WorkerLifecycleManager(echo_queue, processor, settings=settings)
        await manager.start()
        try:
            await echo_queue.add("s1", {})
            first_worker = manager.worker
            await wait_until(lambda: manager.state == WorkerState.DRAINING)

            second = await echo_queue.add("s2", {})

            assert manager.state == WorkerState.RUNNING
            assert not manager.idle_timer_armed
            await wait_until(lambda: second in processor.processed)
            assert manager.worker is first_worker

            await wait_until(lambda: manager.state == WorkerState.STOPPED, timeout=3)
        finally:
            await manager.stop()

    async def test_restarts_after_idle_shutdown(self, echo_queue, manager, processor, wait_until):
        """Test that a new job after shutdown starts a fresh worker."""
        await manager.start()
        await echo_queue.add("s1", {})
        first_worker = manager.worker
        await wait_until(lambda: manager.state == WorkerState.STOPPED, timeout=2)

        job_id = await echo_queue.add("s2", {})

        assert manager.worker is not None
        assert manager.worker is not first_worker
        await wait_until(lambda: job_id in processor.processed)

    async def test_stop_abandons_in_flight_job(self, echo_queue, manager, processor, wait_until):
        """Test that shutdown leaves the running job active."""
        processor.gate = asyncio.Event()
        await manager.start()
        await echo_queue.add("s1", {})
        await wait_until(lambda: manager.worker and manager.worker.current_job_ids)

        await manager.stop()

        assert manager.state == WorkerState.STOPPED
        assert manager.worker is None
        assert (await echo_queue.status_for("s1")).status == JobStatus.ACTIVE


class TestProcessorRegistry:
    """Tests for ProcessorRegistry."""

    async def test_register_and_get(self, manager):
        """Test lookups by queue name."""
        registry = ProcessorRegistry()
        registry.register(manager)

        assert "echo" in registry
        assert registry.get("echo") is manager
        assert registry.queue_names() == ["echo"]

    async def test_duplicate_registration_rejected(self, manager):
        """Test that a queue has at most one manager."""
        registry = ProcessorRegistry()
        registry.register(manager)

        with pytest.raises(ValueError):
            registry.register(manager)
