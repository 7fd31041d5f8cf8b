"""
Runtime wiring.

Builds the two queues, their processors and lifecycle managers from a
session factory and a collaborators bundle. start() and stop() are plain
coroutines so any host (the worker entry point, a web app lifespan, tests)
can drive them.
"""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from genqueue.config import Settings, get_settings
from genqueue.constants import (
    ENCYCLOPEDIA_JOB_NAME,
    ENCYCLOPEDIA_JOB_PREFIX,
    ENCYCLOPEDIA_QUEUE,
    ENCYCLOPEDIA_WORK_LABEL,
    SOLUTIONS_JOB_NAME,
    SOLUTIONS_JOB_PREFIX,
    SOLUTIONS_QUEUE,
    SOLUTIONS_WORK_LABEL,
)
from genqueue.processors.encyclopedia import EncyclopediaProcessor
from genqueue.processors.solutions import SolutionsProcessor
from genqueue.queue.job_queue import JobQueue
from genqueue.queue.waiter import DependencyWaiter
from genqueue.reaper.main import StalledJobReaper
from genqueue.retry import Sleep
from genqueue.services import EncyclopediaQueueService, SolutionsQueueService
from genqueue.types.collaborators import Collaborators
from genqueue.worker.lifecycle import WorkerLifecycleManager
from genqueue.worker.registry import ProcessorRegistry

logger = logging.getLogger(__name__)


class JobRuntime:
    """
    Everything one process needs to accept and run generation jobs.

    Attributes:
        encyclopedia: Service to queue encyclopedia jobs and read status.
        solutions: Service to queue solutions jobs and read status.
        registry: Lifecycle managers by queue name.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        collaborators: Collaborators,
        settings: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Wire the runtime.

        Args:
            session_factory: Factory for database sessions.
            collaborators: External capabilities used by the pipelines.
            settings: Optional settings override.
            sleep: Sleep function handed to the processors.
        """
        self.settings = settings or get_settings()

        self.encyclopedia_queue = JobQueue(
            ENCYCLOPEDIA_QUEUE,
            session_factory,
            job_name=ENCYCLOPEDIA_JOB_NAME,
            job_id_prefix=ENCYCLOPEDIA_JOB_PREFIX,
            settings=self.settings,
            work_label=ENCYCLOPEDIA_WORK_LABEL,
        )
        self.solutions_queue = JobQueue(
            SOLUTIONS_QUEUE,
            session_factory,
            job_name=SOLUTIONS_JOB_NAME,
            job_id_prefix=SOLUTIONS_JOB_PREFIX,
            settings=self.settings,
            work_label=SOLUTIONS_WORK_LABEL,
        )

        self.encyclopedia = EncyclopediaQueueService(self.encyclopedia_queue)
        self.solutions = SolutionsQueueService(self.solutions_queue)
        self.encyclopedia_waiter = DependencyWaiter(self.encyclopedia_queue)

        encyclopedia_processor = EncyclopediaProcessor(
            collaborators, settings=self.settings, sleep=sleep
        )
        solutions_processor = SolutionsProcessor(
            collaborators,
            encyclopedia_service=self.encyclopedia,
            encyclopedia_waiter=self.encyclopedia_waiter,
            settings=self.settings,
            sleep=sleep,
        )

        self.registry = ProcessorRegistry()
        self.registry.register(
            WorkerLifecycleManager(self.encyclopedia_queue, encyclopedia_processor, settings=self.settings)
        )
        self.registry.register(
            WorkerLifecycleManager(self.solutions_queue, solutions_processor, settings=self.settings)
        )

        self.reaper = StalledJobReaper(
            [self.encyclopedia_queue, self.solutions_queue],
            session_factory,
            settings=self.settings,
        )

    async def start(self) -> None:
        """
        Start processing.

        Fails stalled jobs first when the reaper is enabled, then lets every
        lifecycle manager reconcile its queue.
        """
        if self.reaper.enabled:
            await self.reaper.run_once()

        await self.registry.start_all()
        logger.info("Job runtime started", extra={"queues": self.registry.queue_names()})

    async def stop(self) -> None:
        """Stop all workers and pending dependency waits."""
        await self.registry.stop_all()
        self.encyclopedia_waiter.close()
        logger.info("Job runtime stopped")
