"""
Bounded readiness polling.

ReadinessPoller knows nothing about maps: it evaluates a predicate, sleeps,
and evaluates again until the predicate holds or the attempt budget is spent.
The sleep coroutine is injected so tests can run it on a virtual clock.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .errors import ReadinessTimeoutError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ReadinessPoller:
    """Repeatedly evaluate a predicate until true or out of attempts."""

    def __init__(self, sleep: Sleep | None = None):
        self._sleep = sleep or asyncio.sleep

    async def poll(
        self,
        predicate: Callable[[], bool],
        interval: float,
        max_attempts: int,
    ) -> int:
        """Wait for `predicate` to become true.

        Parameters
        ----------
        predicate : zero-argument callable; exceptions it raises propagate
            unchanged and stop polling.
        interval : seconds to sleep between two checks.
        max_attempts : total number of checks, the immediate one included.

        Returns
        -------
        The 1-based number of the check that succeeded.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0:
            raise ValueError("interval must not be negative")

        for attempt in range(1, max_attempts + 1):
            if predicate():
                logger.debug("Predicate satisfied on check %d", attempt)
                return attempt
            if attempt < max_attempts:
                await self._sleep(interval)

        raise ReadinessTimeoutError(
            f"Readiness not confirmed after {max_attempts} checks "
            f"({max_attempts * interval:.1f}s)",
            attempts=max_attempts,
        )
