"""
Queue worker.

A Worker pulls jobs from one queue and runs them through a processor
callback. It does not poll: when the queue is empty it emits "drained" and
sleeps until the queue announces a new job (or a delayed job becomes due).
"""

import asyncio
import logging
import os
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable
from uuid import uuid4

from genqueue.config import Settings, get_settings
from genqueue.constants import (
    EVENT_WAITING,
    SPAN_PROCESS_JOB,
    WORKER_EVENT_CLOSED,
    WORKER_EVENT_COMPLETED,
    WORKER_EVENT_DRAINED,
    WORKER_EVENT_FAILED,
    JobState,
)
from genqueue.observability.logging import bind_job_context, clear_context
from genqueue.observability.metrics import get_metrics
from genqueue.observability.tracing import get_tracer
from genqueue.queue.job_queue import JobQueue
from genqueue.types.events import QueueEvent
from genqueue.types.job import Job

logger = logging.getLogger(__name__)

# Type alias for the job processing callback
JobProcessor = Callable[[Job], Awaitable[Any]]

# Seconds to back off after an unexpected error talking to the queue
ERROR_BACKOFF_SECONDS = 1.0


class Worker:
    """
    Job worker bound to a single queue.

    Features:
    - Concurrency slots as independent consumer tasks (1 by default)
    - Event-driven wake-ups from the queue instead of a poll interval
    - "drained" notification when no job is left to hand out
    - Graceful close (finish the current job) or forced close (abandon it)
    """

    def __init__(
        self,
        queue: JobQueue,
        processor: JobProcessor,
        concurrency: int | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the worker.

        Args:
            queue: Queue to pull jobs from.
            processor: Coroutine function executing one job.
            concurrency: Jobs processed at the same time.
            settings: Optional settings override.
        """
        settings = settings or get_settings()

        self.queue = queue
        self.concurrency = concurrency or settings.worker_concurrency
        self.worker_id = f"{queue.name}-{os.getpid()}-{uuid4().hex[:8]}"

        self._processor = processor
        self._consumers: list[asyncio.Task] = []
        self._wake = asyncio.Event()
        self._listeners: dict[str, list[Callable[..., None]]] = defaultdict(list)
        self._current_jobs: dict[str, Job] = {}
        self._active = 0
        self._drained_emitted = False
        self._started = False
        self._closing = False
        self._closed = False
        self._metrics = get_metrics()

    @property
    def closing(self) -> bool:
        """True once close has been requested."""
        return self._closing

    @property
    def closed(self) -> bool:
        """True once every consumer has stopped."""
        return self._closed

    @property
    def current_job_ids(self) -> list[str]:
        """Ids of the jobs being processed right now."""
        return list(self._current_jobs)

    def on(self, event_type: str, listener: Callable[..., None]) -> None:
        """
        Register a lifecycle listener.

        Events and their arguments:
        - completed: (job, result)
        - failed: (job, error)
        - drained: ()
        - closed: ()
        """
        self._listeners[event_type].append(listener)

    def _emit(self, event_type: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event_type, [])):
            try:
                listener(*args)
            except Exception:
                logger.exception(
                    "Worker listener failed",
                    extra={"worker_id": self.worker_id, "event_type": event_type},
                )

    def start(self) -> None:
        """Start the consumer tasks."""
        if self._started:
            raise RuntimeError("Worker is already started")

        self._started = True
        self.queue.events.on(EVENT_WAITING, self._on_job_added)

        for slot in range(self.concurrency):
            task = asyncio.create_task(
                self._consume(), name=f"{self.worker_id}-slot-{slot}"
            )
            self._consumers.append(task)

        logger.info(
            "Worker started",
            extra={
                "worker_id": self.worker_id,
                "queue": self.queue.name,
                "concurrency": self.concurrency,
            },
        )

    def notify(self) -> None:
        """
        Wake idle consumers so they look for work.
        An empty claim after a wake reports drained again.
        """
        self._drained_emitted = False
        self._wake.set()

    def _on_job_added(self, event: QueueEvent) -> None:
        self.notify()

    async def close(self, force: bool = False) -> None:
        """
        Stop the worker.

        Args:
            force: Cancel in-flight jobs instead of letting them finish.
                Cancelled jobs stay active in the queue.
        """
        if self._closed:
            return

        if not self._closing:
            self._closing = True
            self.queue.events.off(EVENT_WAITING, self._on_job_added)
            self._wake.set()

            logger.info(
                "Worker closing",
                extra={
                    "worker_id": self.worker_id,
                    "queue": self.queue.name,
                    "force": force,
                    "in_flight": len(self._current_jobs),
                },
            )

        if force:
            for task in self._consumers:
                task.cancel()

        await asyncio.gather(*self._consumers, return_exceptions=True)

        if not self._closed:
            self._closed = True
            logger.info("Worker closed", extra={"worker_id": self.worker_id})
            self._emit(WORKER_EVENT_CLOSED)

    async def _wait_for_work(self, timeout: float | None) -> None:
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def _consume(self) -> None:
        """Claim and process jobs until the worker closes."""
        while not self._closing:
            try:
                self._wake.clear()
                job = await self.queue.claim_next()

                if job is None:
                    if self._active == 0 and not self._drained_emitted:
                        self._drained_emitted = True
                        logger.debug(
                            "Queue drained",
                            extra={"worker_id": self.worker_id, "queue": self.queue.name},
                        )
                        self._emit(WORKER_EVENT_DRAINED)

                    if self._closing:
                        break

                    await self._wait_for_work(await self.queue.seconds_until_next_delayed())
                    continue

            except Exception as e:
                logger.exception(
                    f"Error in worker loop: {e}",
                    extra={"worker_id": self.worker_id, "queue": self.queue.name},
                )
                await self._wait_for_work(ERROR_BACKOFF_SECONDS)
                continue

            self._drained_emitted = False
            self._active += 1
            try:
                await self._execute(job)
            finally:
                self._active -= 1

    async def _execute(self, job: Job) -> None:
        """
        Execute a single job and record its outcome.

        Handles the full lifecycle:
        1. Run the processor inside a trace span
        2. Mark as COMPLETED with the result, or FAILED with the error message
        3. Notify listeners
        """
        start_time = time.monotonic()
        self._current_jobs[job.job_id] = job
        bind_job_context(self.queue.name, job.job_id, job.subject_id)

        logger.info(
            "Executing job",
            extra={"job_id": job.job_id, "queue": self.queue.name, "subject_id": job.subject_id},
        )

        try:
            try:
                with get_tracer().start_as_current_span(SPAN_PROCESS_JOB) as span:
                    span.set_attribute("queue", self.queue.name)
                    span.set_attribute("job_id", job.job_id)
                    span.set_attribute("subject_id", job.subject_id)

                    result = await self._processor(job)

            except Exception as e:
                reason = str(e) or type(e).__name__
                await self._record_failure(job, reason, e, start_time)
                return

            try:
                await self.queue.complete(job, result)
            except Exception as e:
                logger.exception(
                    "Failed to mark job as completed",
                    extra={"job_id": job.job_id, "queue": self.queue.name},
                )
                await self._record_failure(job, str(e) or type(e).__name__, e, start_time)
                return

            duration = time.monotonic() - start_time
            self._metrics.record_job_finished(self.queue.name, JobState.COMPLETED, duration)

            logger.info(
                "Job completed successfully",
                extra={"job_id": job.job_id, "duration": f"{duration:.2f}s"},
            )
            self._emit(WORKER_EVENT_COMPLETED, job, result)

        finally:
            self._current_jobs.pop(job.job_id, None)
            clear_context()

    async def _record_failure(
        self,
        job: Job,
        reason: str,
        error: Exception,
        start_time: float,
    ) -> None:
        duration = time.monotonic() - start_time

        try:
            await self.queue.fail(job, reason)
        except Exception:
            logger.exception(
                "Failed to mark job as failed",
                extra={"job_id": job.job_id, "queue": self.queue.name},
            )

        self._metrics.record_job_finished(self.queue.name, JobState.FAILED, duration)

        logger.warning(
            "Job failed",
            extra={
                "job_id": job.job_id,
                "queue": self.queue.name,
                "error": reason,
                "error_type": type(error).__name__,
                "duration": f"{duration:.2f}s",
            },
        )
        self._emit(WORKER_EVENT_FAILED, job, error)
