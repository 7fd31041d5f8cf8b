"""
Encyclopedia generation pipeline.

Makes sure every unit of the subject has a summary, then generates the
encyclopedia from the combined summaries and stores it as a markdown
artifact.
"""

import logging
from typing import Any

from genqueue.constants import ENCYCLOPEDIA_QUEUE
from genqueue.exceptions import UpstreamFailure
from genqueue.observability.metrics import get_metrics
from genqueue.processors.base import BaseProcessor
from genqueue.retry import retry_async
from genqueue.types.collaborators import UnitInfo
from genqueue.types.job import EncyclopediaJobData, EncyclopediaJobResult, Job

logger = logging.getLogger(__name__)

# Progress reported at each pipeline step
PROGRESS_CONTEXT = 10
PROGRESS_UNITS_LISTED = 20
PROGRESS_SUMMARIES_SPAN = 50
PROGRESS_SUMMARIES_CAP = 70
PROGRESS_FACTS = 75
PROGRESS_GENERATING = 80
PROGRESS_GENERATED = 90
PROGRESS_DONE = 100


def artifact_name(subject_name: str) -> str:
    """File name of the stored encyclopedia."""
    return f"World encyclopedia - {subject_name}.md"


def collect_unique(values: list[list[str]]) -> list[str]:
    """Flatten and deduplicate, keeping first-seen order."""
    seen: dict[str, None] = {}
    for group in values:
        for value in group:
            seen.setdefault(value, None)
    return list(seen)


def extract_encyclopedia(response: Any) -> str:
    """Read the encyclopedia text from a generator response."""
    if isinstance(response, str):
        return response
    if isinstance(response, dict):
        return response.get("encyclopedia") or ""
    return getattr(response, "encyclopedia", "") or ""


class EncyclopediaProcessor(BaseProcessor):
    """
    Processor of the encyclopedia-generation queue.

    Steps:
    1. Resolve the subject
    2. List its units and summarize those without a summary, one at a time
       with retries; a unit that keeps failing is skipped
    3. Collect dimensions, scales and the combined summaries
    4. Generate the encyclopedia
    5. Store it and return its public URL
    """

    queue_name = ENCYCLOPEDIA_QUEUE
    processor_name = "Encyclopedia"

    async def process_job(self, job: Job) -> EncyclopediaJobResult:
        data = EncyclopediaJobData.model_validate(job.data)
        subject_id = data.subject_id

        logger.info(f"Processing encyclopedia job {job.job_id} for subject {subject_id}")

        await job.update_progress(PROGRESS_CONTEXT)
        context = await self.collaborators.context_resolver.resolve(subject_id)

        await job.update_progress(PROGRESS_UNITS_LISTED)
        units = await self.collaborators.unit_summaries.list_units(subject_id)
        await self._ensure_summaries(job, units)

        await job.update_progress(PROGRESS_FACTS)
        summaries = await self.collaborators.unit_summaries.get_summaries(subject_id)
        if not summaries:
            logger.warning(f"No summaries available for subject {subject_id}")

        facts = {
            "dimensions": collect_unique([unit.dimensions for unit in units]),
            "scales": collect_unique([unit.scales for unit in units]),
            "summaries": summaries,
            "selected_files": data.selected_files,
        }

        await job.update_progress(PROGRESS_GENERATING)
        logger.info(f"Generating encyclopedia content for subject {subject_id}")
        try:
            response = await self.collaborators.encyclopedia_generator.generate(context, facts)
        except UpstreamFailure:
            raise
        except Exception as e:
            raise UpstreamFailure(str(e), capability="encyclopedia_generator") from e

        await job.update_progress(PROGRESS_GENERATED)
        result = EncyclopediaJobResult(encyclopedia=extract_encyclopedia(response))

        await self.save_result(job, result)
        await job.update_progress(PROGRESS_DONE)

        return result

    async def _ensure_summaries(self, job: Job, units: list[UnitInfo]) -> None:
        """
        Summarize every unit lacking a summary, sequentially.

        Each unit gets its own retry budget. Consecutive calls are spaced by
        the inter-unit delay.
        """
        missing = [unit for unit in units if not unit.has_summary]

        logger.info(
            f"Found {len(missing)} units without summaries out of {len(units)} total",
            extra={"job_id": job.job_id},
        )
        if not missing:
            return

        step = PROGRESS_SUMMARIES_SPAN / len(missing)
        progress = float(PROGRESS_UNITS_LISTED)
        failed: list[str] = []

        for index, unit in enumerate(missing):
            if index > 0 and self.settings.inter_unit_delay_seconds > 0:
                await self._sleep(self.settings.inter_unit_delay_seconds)

            try:
                await retry_async(
                    lambda unit_id=unit.unit_id: self.collaborators.unit_summaries.ensure_summary(unit_id),
                    max_attempts=self.settings.summary_max_attempts,
                    base_delay=self.settings.summary_retry_base_delay_seconds,
                    description=f"summary of unit {unit.unit_id}",
                    sleep=self._sleep,
                )
            except Exception as e:
                failed.append(unit.unit_id)
                get_metrics().record_unit_summary_failure(self.queue_name)
                logger.error(
                    f"Failed to generate summary for unit {unit.unit_id} after "
                    f"{self.settings.summary_max_attempts} attempts: {e}",
                    extra={"job_id": job.job_id, "unit_id": unit.unit_id},
                )

            progress += step
            await job.update_progress(min(progress, PROGRESS_SUMMARIES_CAP))

        logger.info(
            f"Summary generation completed: {len(missing) - len(failed)} successful, {len(failed)} failed",
            extra={"job_id": job.job_id},
        )
        if failed:
            logger.warning(
                "Some summaries failed to generate. Proceeding with available summaries.",
                extra={"job_id": job.job_id, "failed_units": failed},
            )

    async def save_result(self, job: Job, result: EncyclopediaJobResult) -> None:
        """Write the encyclopedia to the artifact store and set its URL."""
        context = await self.collaborators.context_resolver.resolve(job.subject_id)
        name = artifact_name(context.name)
        scope = {"organization_id": context.organization_id or "", "subject_id": context.id}

        logger.info(
            "Saving encyclopedia to artifact store",
            extra={"subject_id": context.id, "file_name": name, "content_length": len(result.encyclopedia)},
        )

        try:
            result.storage_url = await self.collaborators.artifact_store.write(
                result.encyclopedia.encode("utf-8"), name, scope
            )
        except UpstreamFailure:
            raise
        except Exception as e:
            raise UpstreamFailure(str(e), capability="artifact_store") from e

        logger.info(
            "Encyclopedia saved",
            extra={"subject_id": context.id, "url": result.storage_url},
        )
