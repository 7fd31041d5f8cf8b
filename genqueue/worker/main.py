"""
Worker process entry point.

Runs both generation queues in one process until SIGTERM/SIGINT. The
external collaborators are loaded from the "module:callable" path in
COLLABORATORS_FACTORY.
"""

import asyncio
import importlib
import logging
import signal

from genqueue.config import Settings, get_settings
from genqueue.db import close_db, get_engine, init_db
from genqueue.observability.logging import setup_logging
from genqueue.observability.metrics import setup_metrics
from genqueue.observability.tracing import instrument_sqlalchemy, setup_tracing
from genqueue.runtime import JobRuntime
from genqueue.types.collaborators import Collaborators

logger = logging.getLogger(__name__)


def load_collaborators(path: str | None) -> Collaborators:
    """
    Build the collaborators from a "module:callable" path.

    Args:
        path: Dotted module path and factory name.

    Returns:
        The Collaborators returned by the factory.

    Raises:
        ValueError: If the path is missing or malformed.
    """
    if not path or ":" not in path:
        raise ValueError(
            "COLLABORATORS_FACTORY must be set to 'module:callable', "
            f"got {path!r}"
        )

    module_name, _, attr = path.partition(":")
    factory = getattr(importlib.import_module(module_name), attr)
    collaborators = factory()

    if not isinstance(collaborators, Collaborators):
        raise ValueError(f"{path} did not return a Collaborators instance")
    return collaborators


async def run_async(settings: Settings | None = None) -> None:
    """Run the worker process asynchronously."""
    settings = settings or get_settings()

    setup_logging(settings)
    metrics = setup_metrics()
    if settings.prometheus_port:
        metrics.serve(settings.prometheus_port)
        logger.info("Metrics server started", extra={"port": settings.prometheus_port})
    setup_tracing()

    session_factory = await init_db(settings)
    instrument_sqlalchemy(get_engine(settings))

    runtime = JobRuntime(
        session_factory,
        load_collaborators(settings.collaborators_factory),
        settings=settings,
    )

    stop_event = asyncio.Event()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await runtime.start()
        await stop_event.wait()
        logger.info("Shutdown signal received")
    finally:
        await runtime.stop()
        await close_db()


def run() -> None:
    """Run the worker process."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
