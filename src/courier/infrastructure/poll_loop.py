"""Shared async polling loop abstraction."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from courier.infrastructure.logger import logger


class PollLoop:
    """Calls fn every interval_s seconds until stopped.

    An exception from one cycle is logged and the next cycle runs as usual,
    so a transient storage failure never terminates the process.
    """

    def __init__(self, name: str, interval_s: float, fn: Callable[[], Awaitable[object]]) -> None:
        self._name = name
        self._interval = interval_s
        self._fn = fn
        self._task: asyncio.Task[None] | None = None
        self._stopped = True
        self.cycles = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the polling loop as a background task."""
        if self.running:
            return
        self._stopped = False
        self._task = asyncio.create_task(self._loop(), name=f"poll-{self._name}")
        logger.info(f"{self._name} loop started", interval_s=self._interval)

    def stop(self) -> None:
        """Stop the polling loop. A cycle in progress is cancelled."""
        self._stopped = True
        if self._task:
            self._task.cancel()
            self._task = None

    async def run_once(self) -> None:
        self.cycles += 1
        try:
            await self._fn()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failures += 1
            logger.exception(f"Error in {self._name} loop", cycle=self.cycles)

    async def _loop(self) -> None:
        while not self._stopped:
            await self.run_once()
            if not self._stopped:
                await asyncio.sleep(self._interval)


def start_poll_loop(name: str, interval_s: float, fn: Callable[[], Awaitable[object]]) -> PollLoop:
    """Create and start a polling loop. Returns a handle to stop it."""
    loop = PollLoop(name, interval_s, fn)
    loop.start()
    return loop
