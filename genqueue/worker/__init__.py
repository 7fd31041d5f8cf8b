"""
Worker module.
Contains the queue worker and its on-demand lifecycle management.
"""

from genqueue.worker.lifecycle import WorkerLifecycleManager
from genqueue.worker.registry import ProcessorRegistry
from genqueue.worker.worker import Worker

__all__ = ["Worker", "WorkerLifecycleManager", "ProcessorRegistry"]
