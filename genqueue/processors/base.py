"""
Base class of the job processors.

A processor holds the business logic of one queue; the queue mechanics
(claiming, progress persistence, outcome recording) live in the worker.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

from genqueue.config import Settings, get_settings
from genqueue.retry import Sleep
from genqueue.types.collaborators import Collaborators
from genqueue.types.job import Job

logger = logging.getLogger(__name__)


class BaseProcessor(ABC):
    """
    Business logic of one queue.

    Subclasses implement process_job and save_result. process_job raises to
    fail the job; the exception message becomes the failure reason.
    """

    queue_name: str
    processor_name: str

    def __init__(
        self,
        collaborators: Collaborators,
        settings: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the processor.

        Args:
            collaborators: External capabilities used by the pipeline.
            settings: Optional settings override.
            sleep: Sleep function for pacing and backoff delays.
        """
        self.collaborators = collaborators
        self.settings = settings or get_settings()
        self._sleep = sleep

    @abstractmethod
    async def process_job(self, job: Job) -> Any:
        """
        Run the pipeline for one job.

        Args:
            job: The claimed job; use job.update_progress to report progress.

        Returns:
            The job result, stored on the completed job.
        """

    @abstractmethod
    async def save_result(self, job: Job, result: Any) -> None:
        """Persist the pipeline output outside the queue."""
