"""
Type definitions for the job processing core.
Contains input/output type definitions for all functions, grouped by module.
"""

from genqueue.types.collaborators import (
    ArtifactStore,
    Collaborators,
    ContextResolver,
    EncyclopediaSource,
    GenerationCapability,
    SolutionsSink,
    SubjectContext,
    UnitInfo,
    UnitSummaryProvider,
)
from genqueue.types.events import QueueEvent
from genqueue.types.job import (
    BaseJobData,
    EncyclopediaJobData,
    EncyclopediaJobResult,
    Job,
    JobOptions,
    JobStatusView,
    SolutionsJobData,
    SolutionsJobResult,
)

__all__ = [
    # Job types
    "Job",
    "JobOptions",
    "JobStatusView",
    "BaseJobData",
    "EncyclopediaJobData",
    "EncyclopediaJobResult",
    "SolutionsJobData",
    "SolutionsJobResult",
    # Event types
    "QueueEvent",
    # Collaborator interfaces
    "Collaborators",
    "SubjectContext",
    "UnitInfo",
    "ContextResolver",
    "UnitSummaryProvider",
    "GenerationCapability",
    "ArtifactStore",
    "SolutionsSink",
    "EncyclopediaSource",
]
