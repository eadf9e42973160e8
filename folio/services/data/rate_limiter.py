"""Fixed-delay sequencer for third-party quote APIs.

Guarantees at least `delay_seconds` between the start of consecutive calls.
Callers are served one at a time; this is a throttle, not a worker pool.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class FixedDelayLimiter:
    """Space out calls by a fixed minimum interval.

    clock and sleep are injectable so tests can observe the waits without
    actually sleeping.
    """

    def __init__(
        self,
        delay_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._delay = max(0.0, delay_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    @property
    def delay_seconds(self) -> float:
        return self._delay

    async def acquire(self) -> None:
        """Wait until the next call is allowed, then claim the slot."""
        async with self._lock:
            if self._last_call is not None:
                wait = self._delay - (self._clock() - self._last_call)
                if wait > 0:
                    logger.debug("Throttling quote request for %.3fs", wait)
                    await self._sleep(wait)
            self._last_call = self._clock()
