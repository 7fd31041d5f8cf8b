"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from genqueue.constants import (
    METRIC_DEPENDENCY_WAITS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_ENQUEUED,
    METRIC_JOBS_FINISHED,
    METRIC_UNIT_SUMMARY_FAILURES,
    METRIC_WORKER_IDLE_SHUTDOWNS,
    METRIC_WORKER_STARTS,
    METRIC_WORKERS_RUNNING,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queues.

    Collects metrics for:
    - Job enqueues and outcomes
    - Job execution duration
    - On-demand worker starts and idle shutdowns
    - Dependency waits and unit summary failures
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            ["queue"],
            registry=self._registry,
        )

        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of jobs that reached a terminal state",
            ["queue", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["queue", "status"],
            buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0),
            registry=self._registry,
        )

        # 0 or 1 per queue for on-demand workers
        self.workers_running = Gauge(
            METRIC_WORKERS_RUNNING,
            "Number of running workers",
            ["queue"],
            registry=self._registry,
        )

        self.worker_starts = Counter(
            METRIC_WORKER_STARTS,
            "Total number of worker starts",
            ["queue"],
            registry=self._registry,
        )

        self.worker_idle_shutdowns = Counter(
            METRIC_WORKER_IDLE_SHUTDOWNS,
            "Total number of workers closed after the idle grace period",
            ["queue"],
            registry=self._registry,
        )

        self.dependency_waits = Counter(
            METRIC_DEPENDENCY_WAITS,
            "Total number of dependency waits by outcome",
            ["queue", "outcome"],
            registry=self._registry,
        )

        self.unit_summary_failures = Counter(
            METRIC_UNIT_SUMMARY_FAILURES,
            "Total number of units whose summary failed after all retries",
            ["queue"],
            registry=self._registry,
        )

    def record_job_enqueued(self, queue: str) -> None:
        """Record a job enqueue."""
        self.jobs_enqueued.labels(queue=queue).inc()

    def record_job_finished(
        self,
        queue: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a job reaching completed or failed."""
        self.jobs_finished.labels(queue=queue, status=status).inc()
        self.job_duration.labels(queue=queue, status=status).observe(duration_seconds)

    def record_worker_started(self, queue: str) -> None:
        """Record an on-demand worker start."""
        self.worker_starts.labels(queue=queue).inc()
        self.workers_running.labels(queue=queue).set(1)

    def record_worker_stopped(self, queue: str, idle: bool) -> None:
        """Record a worker close."""
        self.workers_running.labels(queue=queue).set(0)
        if idle:
            self.worker_idle_shutdowns.labels(queue=queue).inc()

    def record_dependency_wait(self, queue: str, outcome: str) -> None:
        """Record the outcome of a dependency wait."""
        self.dependency_waits.labels(queue=queue, outcome=outcome).inc()

    def record_unit_summary_failure(self, queue: str) -> None:
        """Record a unit whose summary could not be generated."""
        self.unit_summary_failures.labels(queue=queue).inc()

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Expose the registry over HTTP for Prometheus to scrape."""
        start_http_server(port, addr=addr, registry=self._registry)


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
