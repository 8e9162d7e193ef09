"""Resettable idle timer using asyncio."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from courier.infrastructure.logger import logger


class IdleTimer:
    """Calls callback once timeout_s passes without a reset().

    The timer is not armed until the first reset(). After it fires it stays
    disarmed until reset() is called again.
    """

    def __init__(self, callback: Callable[[], Awaitable[None] | None], timeout_s: float) -> None:
        self._callback = callback
        self._timeout = timeout_s
        self._task: asyncio.Task[None] | None = None
        self.fired = False

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def reset(self) -> None:
        """Cancel any pending countdown and start a new one."""
        if self._task:
            self._task.cancel()
        self._task = asyncio.create_task(self._fire())

    async def _fire(self) -> None:
        await asyncio.sleep(self._timeout)
        self.fired = True
        try:
            result = self._callback()
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Idle timer callback failed")

    def clear(self) -> None:
        """Cancel the timer without firing the callback."""
        if self._task:
            self._task.cancel()
            self._task = None
