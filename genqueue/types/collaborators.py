"""
Interfaces of the external collaborators the pipelines call.

The queue core treats these as opaque request/response capabilities;
concrete implementations live in the host application.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel


class SubjectContext(BaseModel):
    """Static context of a subject of work."""

    id: str
    name: str
    description: str = ""
    organization_id: str | None = None


class UnitInfo(BaseModel):
    """One unit a subject depends on, with its summary status."""

    unit_id: str
    has_summary: bool
    dimensions: list[str] = []
    scales: list[str] = []


class ContextResolver(Protocol):
    async def resolve(self, subject_id: str) -> SubjectContext:
        """Resolve a subject. Raises NotFoundError if it no longer exists."""
        ...


class UnitSummaryProvider(Protocol):
    async def list_units(self, subject_id: str) -> list[UnitInfo]:
        """List the subject's units and whether each has a summary."""
        ...

    async def ensure_summary(self, unit_id: str) -> None:
        """Compute the unit's summary. Idempotent."""
        ...

    async def get_summaries(self, subject_id: str) -> str | None:
        """Combined summaries of all units, or None if there are none."""
        ...


class GenerationCapability(Protocol):
    async def generate(self, context: SubjectContext, facts: dict[str, Any]) -> Any:
        """Generate content from a subject context and aggregated facts."""
        ...


class ArtifactStore(Protocol):
    async def write(self, data: bytes, name: str, scope: dict[str, str]) -> str:
        """Store an artifact and return its public URL."""
        ...


class SolutionsSink(Protocol):
    async def save(self, subject_id: str, solutions: list[dict[str, Any]]) -> None:
        """Persist generated solutions for a subject."""
        ...


class EncyclopediaSource(Protocol):
    async def get_encyclopedia_content(self, subject_id: str) -> str | None:
        """Previously generated encyclopedia content, if any."""
        ...


@dataclass
class Collaborators:
    """Bundle of the external collaborators used by both pipelines."""

    context_resolver: ContextResolver
    unit_summaries: UnitSummaryProvider
    encyclopedia_generator: GenerationCapability
    solutions_generator: GenerationCapability
    artifact_store: ArtifactStore
    solutions_sink: SolutionsSink
    encyclopedia_source: EncyclopediaSource | None = None
