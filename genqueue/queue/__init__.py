"""
Queue module.
Contains the job queue façade, its event stream, status projection and
dependency waiting.
"""

from genqueue.queue.events import QueueEvents
from genqueue.queue.job_queue import JobQueue
from genqueue.queue.status import StatusProjector
from genqueue.queue.waiter import DependencyWaiter

__all__ = ["JobQueue", "QueueEvents", "StatusProjector", "DependencyWaiter"]
