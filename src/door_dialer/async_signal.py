"""One-shot broadcast signal for asyncio tasks.

This module provides the AsyncSignal class which lets any number of tasks
block until some external event fires (for example the modem answering
"OK" to a command).
"""

import asyncio
import logging
from typing import List

logger = logging.getLogger(__name__)


class AsyncSignal:
    """Rendezvous point between tasks waiting on an event and its source.

    ``wait()`` registers the caller and suspends it until the next call to
    ``trigger()``. ``trigger()`` releases every waiter registered so far, in
    registration order, and then starts a fresh registration list, so a
    waiter that registers afterwards blocks until the following trigger.

    Only safe to use from a single event loop.
    """

    def __init__(self) -> None:
        """Initialize the signal with no registered waiters."""
        self._waiters: List["asyncio.Future[None]"] = []

    async def wait(self) -> None:
        """Suspend until the next trigger() call."""
        waiter: "asyncio.Future[None]" = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def trigger(self) -> int:
        """Release every currently registered waiter exactly once.

        Returns:
            Number of waiters released
        """
        waiters = self._waiters
        self._waiters = []

        released = 0
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
                released += 1

        logger.debug("Signal triggered, released %d waiter(s)", released)
        return released

    @property
    def waiter_count(self) -> int:
        """Number of tasks currently waiting for the next trigger."""
        return len(self._waiters)
