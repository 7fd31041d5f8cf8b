"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - WAITING -> ACTIVE (claimed by a worker)
    - DELAYED -> WAITING (delay elapsed)
    - ACTIVE -> COMPLETED (success)
    - ACTIVE -> FAILED (processor raised)
    """

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStatus(StrEnum):
    """Caller-facing job status for a subject. NONE means no job on record."""

    NONE = "none"
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkerState(StrEnum):
    """
    Worker lifecycle states managed per queue.

    STOPPED -> STARTING -> RUNNING -> DRAINING -> STOPPED
    DRAINING -> RUNNING when work arrives during the idle grace period.
    """

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"


# States that block a new job for the same subject
PENDING_STATES: tuple[JobState, ...] = (
    JobState.ACTIVE,
    JobState.WAITING,
    JobState.DELAYED,
)

# Queue names
ENCYCLOPEDIA_QUEUE = "encyclopedia-generation"
SOLUTIONS_QUEUE = "solutions-generation"

# Job names and id prefixes
ENCYCLOPEDIA_JOB_NAME = "generate-encyclopedia"
SOLUTIONS_JOB_NAME = "generate-solutions"
ENCYCLOPEDIA_JOB_PREFIX = "encyclopedia"
SOLUTIONS_JOB_PREFIX = "solutions"

# Subject of the conflict message raised for an in-flight job
ENCYCLOPEDIA_WORK_LABEL = "An encyclopedia generation"
SOLUTIONS_WORK_LABEL = "A solutions generation"

# Progress bounds
PROGRESS_MIN = 0
PROGRESS_MAX = 100

# Queue event types
EVENT_WAITING = "waiting"
EVENT_ACTIVE = "active"
EVENT_PROGRESS = "progress"
EVENT_COMPLETED = "completed"
EVENT_FAILED = "failed"

# Worker event types
WORKER_EVENT_COMPLETED = "completed"
WORKER_EVENT_FAILED = "failed"
WORKER_EVENT_DRAINED = "drained"
WORKER_EVENT_CLOSED = "closed"

# Metrics names
METRIC_JOBS_ENQUEUED = "genqueue_jobs_enqueued_total"
METRIC_JOBS_FINISHED = "genqueue_jobs_finished_total"
METRIC_JOB_DURATION = "genqueue_job_duration_seconds"
METRIC_WORKERS_RUNNING = "genqueue_workers_running"
METRIC_WORKER_STARTS = "genqueue_worker_starts_total"
METRIC_WORKER_IDLE_SHUTDOWNS = "genqueue_worker_idle_shutdowns_total"
METRIC_DEPENDENCY_WAITS = "genqueue_dependency_waits_total"
METRIC_UNIT_SUMMARY_FAILURES = "genqueue_unit_summary_failures_total"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_PROCESS_JOB = "process_job"
SPAN_WAIT_DEPENDENCY = "wait_dependency"
