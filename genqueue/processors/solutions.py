"""
Solutions generation pipeline.

Derives solutions from the subject's encyclopedia. When no encyclopedia is
available yet, one is generated first through the encyclopedia queue and
this job waits for it.
"""

import asyncio
import logging
from typing import Any

from genqueue.config import Settings
from genqueue.constants import SOLUTIONS_QUEUE, SPAN_WAIT_DEPENDENCY
from genqueue.exceptions import (
    DependencyFailure,
    DependencyTimeoutError,
    JobFailedError,
    NotFoundError,
    UpstreamFailure,
)
from genqueue.observability.tracing import get_tracer
from genqueue.processors.base import BaseProcessor
from genqueue.queue.waiter import DependencyWaiter
from genqueue.retry import Sleep
from genqueue.services import EncyclopediaQueueService
from genqueue.types.collaborators import Collaborators
from genqueue.types.job import Job, SolutionsJobData, SolutionsJobResult

logger = logging.getLogger(__name__)

PROGRESS_CONTEXT = 10
PROGRESS_CHECKING = 20
PROGRESS_ENCYCLOPEDIA_READY = 50
PROGRESS_GENERATING = 60
PROGRESS_GENERATED = 90
PROGRESS_DONE = 100


class SolutionsProcessor(BaseProcessor):
    """
    Processor of the solutions-generation queue.

    Steps:
    1. Resolve the subject
    2. Reuse the stored encyclopedia, or queue its generation and wait
    3. Generate solutions from the encyclopedia
    4. Save the solutions
    """

    queue_name = SOLUTIONS_QUEUE
    processor_name = "Solutions"

    def __init__(
        self,
        collaborators: Collaborators,
        encyclopedia_service: EncyclopediaQueueService,
        encyclopedia_waiter: DependencyWaiter,
        settings: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize the processor.

        Args:
            collaborators: External capabilities used by the pipeline.
            encyclopedia_service: Used to queue a missing encyclopedia.
            encyclopedia_waiter: Waits on encyclopedia queue jobs.
            settings: Optional settings override.
            sleep: Sleep function.
        """
        super().__init__(collaborators, settings=settings, sleep=sleep)
        self.encyclopedia_service = encyclopedia_service
        self.encyclopedia_waiter = encyclopedia_waiter

    async def process_job(self, job: Job) -> SolutionsJobResult:
        data = SolutionsJobData.model_validate(job.data)
        subject_id = data.subject_id

        logger.info(f"Processing solutions job {job.job_id} for subject {subject_id}")

        await job.update_progress(PROGRESS_CONTEXT)
        context = await self.collaborators.context_resolver.resolve(subject_id)

        await job.update_progress(PROGRESS_CHECKING)
        encyclopedia = await self._existing_encyclopedia(subject_id)

        if encyclopedia:
            logger.info(f"Using existing encyclopedia for subject {subject_id}")
        else:
            logger.info(
                f"No completed encyclopedia found for subject {subject_id}, queueing new generation"
            )
            # A ConflictError here propagates unchanged
            encyclopedia_job_id = await self.encyclopedia_service.add_encyclopedia_job(subject_id)
            encyclopedia = await self._wait_for_encyclopedia(encyclopedia_job_id)

        await job.update_progress(PROGRESS_ENCYCLOPEDIA_READY)
        await job.update_progress(PROGRESS_GENERATING)

        logger.info(f"Generating solutions for subject {subject_id} using encyclopedia")
        facts = {
            "encyclopedia": encyclopedia,
            "user_id": data.user_id,
            "organization_id": data.organization_id,
        }
        try:
            response = await self.collaborators.solutions_generator.generate(context, facts)
        except UpstreamFailure:
            raise
        except Exception as e:
            raise UpstreamFailure(str(e), capability="solutions_generator") from e

        result = SolutionsJobResult(solutions=list(response or []))

        await job.update_progress(PROGRESS_GENERATED)
        await self.save_result(job, result)
        await job.update_progress(PROGRESS_DONE)

        logger.info(
            f"Solutions generation completed for subject {subject_id}, "
            f"generated {len(result.solutions)} solutions"
        )
        return result

    async def _existing_encyclopedia(self, subject_id: str) -> str | None:
        source = self.collaborators.encyclopedia_source
        if source is None:
            return None
        return await source.get_encyclopedia_content(subject_id)

    async def _wait_for_encyclopedia(self, encyclopedia_job_id: str) -> str:
        """
        Wait for an encyclopedia job and return its content.

        Raises:
            DependencyFailure: If the job failed, timed out, vanished, or
                completed without content.
        """
        timeout = self.settings.dependency_wait_timeout_seconds
        logger.info(f"Waiting for encyclopedia job {encyclopedia_job_id} to complete")

        with get_tracer().start_as_current_span(SPAN_WAIT_DEPENDENCY) as span:
            span.set_attribute("dependency_job_id", encyclopedia_job_id)
            try:
                result = await self.encyclopedia_waiter.wait_for(encyclopedia_job_id, timeout)
            except (JobFailedError, DependencyTimeoutError, NotFoundError) as e:
                logger.error(
                    f"Failed to wait for encyclopedia job {encyclopedia_job_id}: {e}"
                )
                raise DependencyFailure(
                    f"Encyclopedia generation failed: {e}",
                    dependency_job_id=encyclopedia_job_id,
                ) from e

        content = _encyclopedia_content(result)
        if not content:
            raise DependencyFailure(
                "Encyclopedia generation failed: Encyclopedia job completed "
                "but no encyclopedia content was returned",
                dependency_job_id=encyclopedia_job_id,
            )
        return content

    async def save_result(self, job: Job, result: SolutionsJobResult) -> None:
        """Hand the solutions to the solutions sink."""
        await self.collaborators.solutions_sink.save(job.subject_id, result.solutions)


def _encyclopedia_content(result: Any) -> str | None:
    if isinstance(result, dict):
        return result.get("encyclopedia")
    return None
