"""Coalesce concurrent identical async operations into one in-flight task."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Run at most one instance of an async operation at a time.

    Callers arriving while the operation is in flight await the same task and
    receive the same result or exception. Each caller waits through
    ``asyncio.shield`` so a caller that is cancelled or times out does not
    cancel the shared task for the remaining waiters.
    """

    def __init__(self) -> None:
        self._task: asyncio.Task[T] | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Join the in-flight operation, or start ``operation`` if none is running."""
        task = self._task
        if task is None:
            task = asyncio.ensure_future(operation())
            self._task = task
            task.add_done_callback(self._on_done)
        return await asyncio.shield(task)

    def _on_done(self, task: asyncio.Task[T]) -> None:
        if self._task is task:
            self._task = None
        # Mark the exception retrieved in case every waiter has already gone.
        if not task.cancelled():
            task.exception()
