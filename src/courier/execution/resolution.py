"""Single-assignment result cell for racing completion events."""

from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

T = TypeVar("T")


class ResolutionCell(Generic[T]):
    """Holds the one outcome of an operation that several events may try to decide.

    The first resolve() wins; every later call is a no-op that returns False.
    Must be created and used on a single event loop.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._source: str | None = None

    @property
    def resolved(self) -> bool:
        return self._future.done()

    @property
    def source(self) -> str | None:
        """Label passed by the resolve() call that won."""
        return self._source

    @property
    def value(self) -> T:
        if not self._future.done():
            raise RuntimeError("ResolutionCell has not been resolved")
        return self._future.result()

    def resolve(self, value: T, source: str | None = None) -> bool:
        if self._future.done():
            return False
        self._source = source
        self._future.set_result(value)
        return True

    async def wait(self) -> T:
        return await asyncio.shield(self._future)
