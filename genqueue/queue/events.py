"""
In-process event stream of a queue.

Every state transition in a JobQueue is published here. Listeners are plain
callables invoked synchronously on the event loop, so they must not block;
listeners that need to do async work schedule it themselves.
"""

import logging
from collections import defaultdict
from typing import Callable

from genqueue.types.events import QueueEvent

logger = logging.getLogger(__name__)

# Type alias for event listeners
EventListener = Callable[[QueueEvent], None]


class QueueEvents:
    """Publish/subscribe hub for one queue's job events."""

    def __init__(self, queue_name: str):
        self.queue_name = queue_name
        self._listeners: dict[str, list[EventListener]] = defaultdict(list)

    def on(self, event_type: str, listener: EventListener) -> None:
        """Register a listener for an event type."""
        self._listeners[event_type].append(listener)

    def off(self, event_type: str, listener: EventListener) -> None:
        """Remove a listener. Unknown listeners are ignored."""
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: str) -> int:
        """Number of listeners registered for an event type."""
        return len(self._listeners.get(event_type, []))

    def emit(self, event: QueueEvent) -> None:
        """
        Deliver an event to every listener of its type.

        A failing listener is logged and does not stop delivery to the rest.
        """
        for listener in list(self._listeners.get(event.event_type, [])):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Queue event listener failed",
                    extra={
                        "queue": self.queue_name,
                        "event_type": event.event_type,
                        "job_id": event.job_id,
                    },
                )
