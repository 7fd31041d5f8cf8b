"""
Event type definitions for in-process queue notifications.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from genqueue.constants import (
    EVENT_ACTIVE,
    EVENT_COMPLETED,
    EVENT_FAILED,
    EVENT_PROGRESS,
    EVENT_WAITING,
    JobState,
)
from genqueue.utils import utcnow


class QueueEvent(BaseModel):
    """
    Event emitted when a job changes state in a queue.
    Consumed by workers (wake-ups) and the dependency waiter.
    """

    event_type: str
    queue_name: str
    job_id: str
    state: JobState
    timestamp: datetime
    progress: int | None = None
    result: dict[str, Any] | None = None
    failed_reason: str | None = None

    @classmethod
    def job_waiting(cls, queue_name: str, job_id: str, delayed: bool = False) -> "QueueEvent":
        """Create a job added event."""
        return cls(
            event_type=EVENT_WAITING,
            queue_name=queue_name,
            job_id=job_id,
            state=JobState.DELAYED if delayed else JobState.WAITING,
            timestamp=utcnow(),
        )

    @classmethod
    def job_active(cls, queue_name: str, job_id: str) -> "QueueEvent":
        """Create a job claimed event."""
        return cls(
            event_type=EVENT_ACTIVE,
            queue_name=queue_name,
            job_id=job_id,
            state=JobState.ACTIVE,
            timestamp=utcnow(),
        )

    @classmethod
    def job_progress(cls, queue_name: str, job_id: str, progress: int) -> "QueueEvent":
        """Create a progress event."""
        return cls(
            event_type=EVENT_PROGRESS,
            queue_name=queue_name,
            job_id=job_id,
            state=JobState.ACTIVE,
            timestamp=utcnow(),
            progress=progress,
        )

    @classmethod
    def job_completed(
        cls,
        queue_name: str,
        job_id: str,
        result: dict[str, Any] | None = None,
    ) -> "QueueEvent":
        """Create a job completed event."""
        return cls(
            event_type=EVENT_COMPLETED,
            queue_name=queue_name,
            job_id=job_id,
            state=JobState.COMPLETED,
            timestamp=utcnow(),
            result=result,
        )

    @classmethod
    def job_failed(cls, queue_name: str, job_id: str, reason: str) -> "QueueEvent":
        """Create a job failed event."""
        return cls(
            event_type=EVENT_FAILED,
            queue_name=queue_name,
            job_id=job_id,
            state=JobState.FAILED,
            timestamp=utcnow(),
            failed_reason=reason,
        )
