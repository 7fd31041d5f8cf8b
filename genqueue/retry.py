"""
Retry with exponential backoff for individual pipeline steps.

Kept independent of the queue so step-level retry can be tested on its own.
Whole jobs are never retried.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Type alias for the sleep function, injectable in tests
Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, base_delay: float) -> float:
    """
    Delay before the next attempt after `attempt` failed.

    Doubles per attempt: with a 2s base, attempts 1, 2, 3 wait 2s, 4s, 8s.

    Args:
        attempt: The 1-based attempt that just failed.
        base_delay: Delay after the first failure, in seconds.

    Returns:
        Seconds to wait.
    """
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return base_delay * (2 ** (attempt - 1))


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    description: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run an async operation, retrying failures with exponential backoff.

    Args:
        operation: Zero-argument callable returning an awaitable.
        max_attempts: Total number of attempts, at least 1.
        base_delay: Backoff base in seconds.
        description: Used in log messages.
        sleep: Sleep function.

    Returns:
        The operation's result.

    Raises:
        Exception: The last attempt's exception once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            logger.debug(f"Running {description} (attempt {attempt}/{max_attempts})")
            return await operation()
        except Exception as e:
            logger.warning(
                f"Attempt {attempt}/{max_attempts} failed for {description}: {e}"
            )

            if attempt == max_attempts:
                raise

            delay = backoff_delay(attempt, base_delay)
            logger.debug(f"Retrying {description} in {delay:g}s")
            await sleep(delay)

    raise AssertionError("unreachable")
