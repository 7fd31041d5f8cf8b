"""
On-demand worker lifecycle.

Keeps zero or one worker per queue: the worker is started when work arrives
(or is found at startup) and closed after an idle grace period once the queue
drains. There is no periodic polling; the only checks are one reconciliation
at startup and the re-check when the idle timer fires.
"""

import asyncio
import logging
from typing import Callable

from genqueue.config import Settings, get_settings
from genqueue.constants import (
    PENDING_STATES,
    WORKER_EVENT_COMPLETED,
    WORKER_EVENT_DRAINED,
    WORKER_EVENT_FAILED,
    WorkerState,
)
from genqueue.observability.metrics import get_metrics
from genqueue.processors.base import BaseProcessor
from genqueue.queue.job_queue import JobQueue
from genqueue.types.job import Job
from genqueue.worker.worker import Worker

logger = logging.getLogger(__name__)

# Type alias for building workers, replaceable in tests
WorkerFactory = Callable[..., Worker]


class WorkerLifecycleManager:
    """
    Owns the on-demand worker of one queue.

    State machine:
    - STOPPED -> STARTING -> RUNNING (ensure_running)
    - RUNNING -> DRAINING (worker drained, idle timer armed)
    - DRAINING -> RUNNING (job added during the grace period)
    - DRAINING -> STOPPED (timer fired and the queue is still empty)
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: BaseProcessor,
        settings: Settings | None = None,
        worker_factory: WorkerFactory = Worker,
    ):
        """
        Initialize the manager.

        Args:
            queue: The queue whose worker is managed.
            processor: Business logic executed for each job.
            settings: Optional settings override.
            worker_factory: Callable building the Worker.
        """
        self.queue = queue
        self.processor = processor

        self._settings = settings or get_settings()
        self._worker_factory = worker_factory
        self._state = WorkerState.STOPPED
        self._worker: Worker | None = None
        self._idle_timer: asyncio.Task | None = None
        self._initializing = False
        self._metrics = get_metrics()

    @property
    def name(self) -> str:
        """Processor name used in log messages."""
        return self.processor.processor_name

    @property
    def state(self) -> WorkerState:
        """Current lifecycle state."""
        return self._state

    @property
    def worker(self) -> Worker | None:
        """The live worker, if any."""
        return self._worker

    @property
    def idle_timer_armed(self) -> bool:
        """True while an idle shutdown is scheduled."""
        return self._idle_timer is not None and not self._idle_timer.done()

    async def start(self) -> None:
        """
        Initialize the manager.

        1. Registers for notifications when jobs are added to the queue
        2. Checks once for jobs left by a previous process and starts the
           worker only if there is work
        """
        self.queue.register_listener(self)
        await self._check_and_start_if_needed()

        logger.info(
            f"{self.name} processor initialized with on-demand worker",
            extra={"queue": self.queue.name, "state": self._state},
        )

    async def ensure_running(self) -> None:
        """
        Make sure a worker is running.

        Called by the queue whenever a job is added. Does nothing while the
        worker is being created or is already live; a pending idle shutdown
        is cancelled and the existing worker kept.
        """
        if self._initializing:
            return

        if self._worker is not None and not self._worker.closing:
            if self._state == WorkerState.DRAINING:
                self._cancel_idle_timer()
                self._state = WorkerState.RUNNING
                self._worker.notify()
                logger.debug(
                    f"{self.name} idle shutdown cancelled, job arrived",
                    extra={"queue": self.queue.name},
                )
            return

        self._initializing = True
        try:
            self._cancel_idle_timer()
            self._state = WorkerState.STARTING

            if self._worker is not None:
                # Worker was closing; let it finish before replacing it
                previous, self._worker = self._worker, None
                await previous.close()

            worker = self._worker_factory(
                self.queue,
                self.processor.process_job,
                settings=self._settings,
            )
            self._setup_worker_events(worker)
            worker.start()

            self._worker = worker
            self._state = WorkerState.RUNNING
            self._metrics.record_worker_started(self.queue.name)

            logger.debug(
                f"{self.name} worker started",
                extra={"queue": self.queue.name, "worker_id": worker.worker_id},
            )
        except Exception:
            self._state = WorkerState.STOPPED
            raise
        finally:
            self._initializing = False

    def _setup_worker_events(self, worker: Worker) -> None:
        """
        Sets up worker event handlers:
        - completed: logs the job
        - failed: logs the job and its error
        - drained: schedules worker shutdown after the idle timeout
        """
        worker.on(WORKER_EVENT_COMPLETED, self._on_completed)
        worker.on(WORKER_EVENT_FAILED, self._on_failed)
        worker.on(WORKER_EVENT_DRAINED, lambda: self._on_drained(worker))

    def _on_completed(self, job: Job, result: object) -> None:
        logger.debug(
            f"{self.name} job {job.job_id} marked as completed",
            extra={"queue": self.queue.name, "subject_id": job.subject_id},
        )

    def _on_failed(self, job: Job, error: Exception) -> None:
        logger.error(
            f"{self.name} job {job.job_id} failed for subject {job.subject_id}: {error}",
            extra={"queue": self.queue.name, "error_type": type(error).__name__},
        )

    def _on_drained(self, worker: Worker) -> None:
        if worker is not self._worker or worker.closing:
            return

        logger.debug(
            f"{self.name} worker drained - scheduling idle timeout",
            extra={"queue": self.queue.name, "idle_timeout_ms": self._settings.worker_idle_timeout_ms},
        )

        self._cancel_idle_timer()
        self._state = WorkerState.DRAINING
        self._idle_timer = asyncio.create_task(self._close_after_idle_timeout())

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            if not self._idle_timer.done():
                self._idle_timer.cancel()
            self._idle_timer = None

    async def _close_after_idle_timeout(self) -> None:
        await asyncio.sleep(self._settings.worker_idle_timeout_seconds)
        # From here on the timer cannot be cancelled by ensure_running;
        # the state checks in _close_worker_if_idle take over.
        self._idle_timer = None
        await self._close_worker_if_idle()

    async def _close_worker_if_idle(self) -> None:
        """
        Close the worker if the queue has no waiting, active or delayed jobs.

        The counts are re-read when the timer fires, so a job added during
        the grace period keeps the worker alive.
        """
        worker = self._worker
        if worker is None or worker.closing:
            return

        try:
            counts = await self.queue.get_counts()
        except Exception:
            logger.exception(
                f"Error checking {self.queue.name} queue before idle shutdown",
                extra={"queue": self.queue.name},
            )
            self._state = WorkerState.RUNNING
            worker.notify()
            return

        if worker is not self._worker or self._state != WorkerState.DRAINING:
            return

        if any(counts[state] > 0 for state in PENDING_STATES):
            self._state = WorkerState.RUNNING
            worker.notify()
            return

        self._worker = None
        self._state = WorkerState.STOPPED

        try:
            await worker.close()
        except Exception:
            logger.exception(
                f"Error closing {self.name} worker",
                extra={"queue": self.queue.name},
            )

        self._metrics.record_worker_stopped(self.queue.name, idle=True)
        logger.debug(f"{self.name} worker closed (idle)", extra={"queue": self.queue.name})

    async def _check_and_start_if_needed(self) -> None:
        """
        Start the worker if the queue already holds pending jobs.
        Only used at startup; there is no periodic polling.
        """
        if self._initializing:
            return

        try:
            pending = await self.queue.has_pending_jobs()
        except Exception:
            logger.exception(
                f"Error checking {self.queue.name} queue status",
                extra={"queue": self.queue.name},
            )
            return

        if pending and (self._worker is None or self._worker.closing):
            logger.debug(
                f"{self.name} worker starting for pending jobs",
                extra={"queue": self.queue.name},
            )
            await self.ensure_running()

    async def stop(self) -> None:
        """
        Shut down on process exit.

        Cancels the idle timer and closes the worker without draining the
        queue; remaining jobs are picked up by the next process. A job in
        progress is abandoned and stays active.
        """
        self._cancel_idle_timer()

        worker, self._worker = self._worker, None
        self._state = WorkerState.STOPPED

        if worker is not None:
            await worker.close(force=True)
            self._metrics.record_worker_stopped(self.queue.name, idle=False)

        logger.info(f"{self.name} processor closed", extra={"queue": self.queue.name})
