"""
SQLAlchemy database models.
Defines the queue_jobs table backing every named queue.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from genqueue.constants import JobState


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class QueueJob(Base):
    """
    A job record in one named queue.

    This is the authoritative source of truth for job state. Every state
    transition goes through JobRepository; workers and lifecycle managers
    only hold state that can be rebuilt from this table.

    Key constraints:
    - job_id is unique across all queues
    - id is a monotonically increasing sequence giving FIFO order
    - at most one pending job per (queue_name, subject_id), enforced at enqueue
    """

    __tablename__ = "queue_jobs"

    # Insertion sequence, used for FIFO ordering
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    job_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )
    queue_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    subject_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    state: Mapped[JobState] = mapped_column(
        Enum(
            JobState,
            name="queue_job_state",
            native_enum=False,
            length=32,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobState.WAITING,
    )
    progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )
    attempts_made: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    # Delayed jobs become waiting once this passes
    delay_until: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    # Timestamps (naive UTC)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        nullable=True,
    )

    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSON,
        nullable=True,
    )
    failure_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    __table_args__ = (
        # Claiming the next job and counting partitions
        Index("ix_queue_jobs_queue_state", "queue_name", "state", "id"),
        # Duplicate detection and status lookups per subject
        Index("ix_queue_jobs_queue_subject", "queue_name", "subject_id", "state"),
        # Retention sweeps
        Index("ix_queue_jobs_queue_finished", "queue_name", "state", "finished_at"),
    )

    def __repr__(self) -> str:
        return (
            f"QueueJob(job_id={self.job_id}, queue={self.queue_name}, "
            f"subject={self.subject_id}, state={self.state}, progress={self.progress})"
        )
