"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from genqueue.config import Settings
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
from genqueue.db import create_session_factory, create_tables, get_test_engine
from genqueue.exceptions import NotFoundError
from genqueue.queue.job_queue import JobQueue
from genqueue.types.collaborators import Collaborators, SubjectContext, UnitInfo


# ============================================================================
# Fake collaborators
# ============================================================================


class FakeContextResolver:
    """Resolves any subject except the ones marked missing."""

    def __init__(self) -> None:
        self.missing: set[str] = set()
        self.calls: list[str] = []

    async def resolve(self, subject_id: str) -> SubjectContext:
        self.calls.append(subject_id)
        if subject_id in self.missing:
            raise NotFoundError(f"Subject {subject_id} not found")
        return SubjectContext(
            id=subject_id,
            name=f"Subject {subject_id}",
            description="A test subject",
            organization_id="org-1",
        )


class FakeUnitSummaries:
    """Units per subject; ensure_summary always fails for units in `failing`."""

    def __init__(self) -> None:
        self.units: dict[str, list[UnitInfo]] = {}
        self.failing: set[str] = set()
        self.summarized: list[str] = []
        self.calls: list[str] = []

    async def list_units(self, subject_id: str) -> list[UnitInfo]:
        return list(self.units.get(subject_id, []))

    async def ensure_summary(self, unit_id: str) -> None:
        self.calls.append(unit_id)
        if unit_id in self.failing:
            raise RuntimeError(f"Summary service unavailable for {unit_id}")
        self.summarized.append(unit_id)

    async def get_summaries(self, subject_id: str) -> str | None:
        names = [
            unit.unit_id
            for unit in self.units.get(subject_id, [])
            if unit.has_summary or unit.unit_id in self.summarized
        ]
        if not names:
            return None
        return "\n".join(f"Summary of {name}" for name in names)


class FakeGenerator:
    """Returns a fixed response, or raises `error`; waits on `gate` if set."""

    def __init__(self, response: Any) -> None:
        self.response = response
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[SubjectContext, dict[str, Any]]] = []

    async def generate(self, context: SubjectContext, facts: dict[str, Any]) -> Any:
        self.calls.append((context, facts))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.response


class FakeArtifactStore:
    def __init__(self) -> None:
        self.writes: list[tuple[bytes, str, dict[str, str]]] = []
        self.error: Exception | None = None

    async def write(self, data: bytes, name: str, scope: dict[str, str]) -> str:
        if self.error is not None:
            raise self.error
        self.writes.append((data, name, scope))
        return f"https://storage.test/{scope['organization_id']}/{scope['subject_id']}/{name}"


class FakeSolutionsSink:
    def __init__(self) -> None:
        self.saved: dict[str, list[dict[str, Any]]] = {}

    async def save(self, subject_id: str, solutions: list[dict[str, Any]]) -> None:
        self.saved[subject_id] = solutions


class FakeEncyclopediaSource:
    def __init__(self, contents: dict[str, str] | None = None) -> None:
        self.contents = contents or {}

    async def get_encyclopedia_content(self, subject_id: str) -> str | None:
        return self.contents.get(subject_id)


class RecordingSleep:
    """Sleep replacement that records delays and only yields to the loop."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    """A fresh SQLite database file per test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'genqueue.db'}"


@pytest_asyncio.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with the schema in place."""
    engine = get_test_engine(database_url)
    await create_tables(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the test engine."""
    return create_session_factory(async_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes
        await session.rollback()


# ============================================================================
# Settings and queues
# ============================================================================


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    """Create test settings with millisecond lifecycle timings."""
    return Settings(
        database_url=database_url,
        log_level="DEBUG",
        log_format="console",
        worker_idle_timeout_ms=200,
        dependency_wait_timeout_seconds=5,
    )


@pytest.fixture
def encyclopedia_queue(session_factory, test_settings: Settings) -> JobQueue:
    return JobQueue(
        ENCYCLOPEDIA_QUEUE,
        session_factory,
        job_name=ENCYCLOPEDIA_JOB_NAME,
        job_id_prefix=ENCYCLOPEDIA_JOB_PREFIX,
        settings=test_settings,
        work_label=ENCYCLOPEDIA_WORK_LABEL,
    )


@pytest.fixture
def solutions_queue(session_factory, test_settings: Settings) -> JobQueue:
    return JobQueue(
        SOLUTIONS_QUEUE,
        session_factory,
        job_name=SOLUTIONS_JOB_NAME,
        job_id_prefix=SOLUTIONS_JOB_PREFIX,
        settings=test_settings,
        work_label=SOLUTIONS_WORK_LABEL,
    )


# ============================================================================
# Collaborators
# ============================================================================


@pytest.fixture
def context_resolver() -> FakeContextResolver:
    return FakeContextResolver()


@pytest.fixture
def unit_summaries() -> FakeUnitSummaries:
    return FakeUnitSummaries()


@pytest.fixture
def encyclopedia_generator() -> FakeGenerator:
    return FakeGenerator({"encyclopedia": "# World encyclopedia\n\nGenerated content."})


@pytest.fixture
def solutions_generator() -> FakeGenerator:
    return FakeGenerator([{"title": "Solution A"}, {"title": "Solution B"}])


@pytest.fixture
def artifact_store() -> FakeArtifactStore:
    return FakeArtifactStore()


@pytest.fixture
def solutions_sink() -> FakeSolutionsSink:
    return FakeSolutionsSink()


@pytest.fixture
def collaborators(
    context_resolver: FakeContextResolver,
    unit_summaries: FakeUnitSummaries,
    encyclopedia_generator: FakeGenerator,
    solutions_generator: FakeGenerator,
    artifact_store: FakeArtifactStore,
    solutions_sink: FakeSolutionsSink,
) -> Collaborators:
    """Bundle of fake collaborators; no encyclopedia source by default."""
    return Collaborators(
        context_resolver=context_resolver,
        unit_summaries=unit_summaries,
        encyclopedia_generator=encyclopedia_generator,
        solutions_generator=solutions_generator,
        artifact_store=artifact_store,
        solutions_sink=solutions_sink,
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def encyclopedia_source_factory() -> Callable[[dict[str, str]], FakeEncyclopediaSource]:
    return FakeEncyclopediaSource


# ============================================================================
# Helpers
# ============================================================================


async def _wait_until(
    condition: Callable[[], Any],
    timeout: float = 5.0,
    interval: float = 0.01,
) -> None:
    """Wait until condition() is truthy; awaits it when it returns a coroutine."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        value = condition()
        if asyncio.iscoroutine(value):
            value = await value
        if value:
            return
        if loop.time() > deadline:
            raise AssertionError(f"Condition not met within {timeout}s")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a condition in tests that observe background workers."""
    return _wait_until
