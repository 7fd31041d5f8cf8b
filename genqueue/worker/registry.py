"""
Registry of the lifecycle managers running in a process.
"""

import asyncio
import logging
from typing import Iterator

from genqueue.exceptions import NotFoundError
from genqueue.worker.lifecycle import WorkerLifecycleManager

logger = logging.getLogger(__name__)


class ProcessorRegistry:
    """
    One lifecycle manager per queue.

    Passed explicitly to whatever needs it, so tests can build as many
    isolated registries as they like.
    """

    def __init__(self) -> None:
        self._managers: dict[str, WorkerLifecycleManager] = {}

    def register(self, manager: WorkerLifecycleManager) -> None:
        """
        Add a manager.

        Raises:
            ValueError: If the queue already has a manager.
        """
        queue_name = manager.queue.name
        if queue_name in self._managers:
            raise ValueError(f"A processor is already registered for queue {queue_name}")
        self._managers[queue_name] = manager
        logger.info(f"Registered processor for queue: {queue_name}")

    def get(self, queue_name: str) -> WorkerLifecycleManager:
        """
        Get the manager of a queue.

        Raises:
            NotFoundError: If no manager is registered for the queue.
        """
        manager = self._managers.get(queue_name)
        if manager is None:
            raise NotFoundError(f"No processor registered for queue: {queue_name}")
        return manager

    def queue_names(self) -> list[str]:
        """List all registered queue names."""
        return list(self._managers)

    def __contains__(self, queue_name: object) -> bool:
        return queue_name in self._managers

    def __iter__(self) -> Iterator[WorkerLifecycleManager]:
        return iter(list(self._managers.values()))

    def __len__(self) -> int:
        return len(self._managers)

    async def start_all(self) -> None:
        """Start every manager, in registration order."""
        for manager in self:
            await manager.start()

    async def stop_all(self) -> None:
        """Stop every manager; one failing stop does not prevent the others."""
        results = await asyncio.gather(
            *(manager.stop() for manager in self), return_exceptions=True
        )
        for manager, result in zip(self, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Error stopping processor for queue {manager.queue.name}: {result}",
                    exc_info=result,
                )
