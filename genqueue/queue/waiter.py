"""
Dependency waiting across queues.

Lets a processor block on another job's terminal state without polling: a
future keyed by job id is resolved by the target queue's completed/failed
events.
"""

import asyncio
import logging
from typing import Any

from genqueue.constants import EVENT_COMPLETED, EVENT_FAILED, JobState
from genqueue.exceptions import DependencyTimeoutError, JobFailedError, NotFoundError
from genqueue.observability.metrics import get_metrics
from genqueue.queue.job_queue import JobQueue
from genqueue.types.events import QueueEvent

logger = logging.getLogger(__name__)


class DependencyWaiter:
    """
    Waits for jobs of one queue to finish.

    Listens to the queue's completed and failed events once, and routes each
    event to the futures registered for that job id.
    """

    def __init__(self, queue: JobQueue):
        self.queue = queue
        self._waiters: dict[str, list[asyncio.Future]] = {}
        self._metrics = get_metrics()

        queue.events.on(EVENT_COMPLETED, self._on_completed)
        queue.events.on(EVENT_FAILED, self._on_failed)

    def close(self) -> None:
        """Detach from the queue's events and cancel outstanding waits."""
        self.queue.events.off(EVENT_COMPLETED, self._on_completed)
        self.queue.events.off(EVENT_FAILED, self._on_failed)
        for futures in self._waiters.values():
            for future in futures:
                if not future.done():
                    future.cancel()
        self._waiters.clear()

    @property
    def pending_count(self) -> int:
        """Number of waits currently in progress."""
        return sum(len(futures) for futures in self._waiters.values())

    def _on_completed(self, event: QueueEvent) -> None:
        for future in self._waiters.get(event.job_id, []):
            if not future.done():
                future.set_result(event.result)

    def _on_failed(self, event: QueueEvent) -> None:
        reason = event.failed_reason or "Job failed without error message"
        for future in self._waiters.get(event.job_id, []):
            if not future.done():
                future.set_exception(JobFailedError(event.job_id, reason))

    async def wait_for(self, job_id: str, timeout: float) -> dict[str, Any] | None:
        """
        Wait until a job completes or fails.

        The future is registered before the job's current state is read, so
        a job finishing between the two steps is not missed.

        Args:
            job_id: The job to wait for.
            timeout: Maximum seconds to wait.

        Returns:
            The job's result.

        Raises:
            NotFoundError: If the job does not exist.
            JobFailedError: If the job failed.
            DependencyTimeoutError: If the job did not finish in time.
        """
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(job_id, []).append(future)

        try:
            job = await self.queue.get_job(job_id)

            if not future.done():
                if job is None:
                    raise NotFoundError(f"Job {job_id} not found in queue {self.queue.name}")
                if job.state == JobState.COMPLETED:
                    future.set_result(job.result)
                elif job.state == JobState.FAILED:
                    future.set_exception(
                        JobFailedError(
                            job_id, job.failure_reason or "Job failed without error message"
                        )
                    )

            logger.info(
                "Waiting for dependency job",
                extra={"queue": self.queue.name, "job_id": job_id, "timeout": timeout},
            )

            try:
                result = await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                self._metrics.record_dependency_wait(self.queue.name, "timeout")
                raise DependencyTimeoutError(job_id, timeout) from None
            except JobFailedError:
                self._metrics.record_dependency_wait(self.queue.name, "failed")
                raise

            self._metrics.record_dependency_wait(self.queue.name, "completed")
            return result

        finally:
            futures = self._waiters.get(job_id, [])
            if future in futures:
                futures.remove(future)
            if not futures:
                self._waiters.pop(job_id, None)
