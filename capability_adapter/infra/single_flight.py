# capability_adapter/infra/single_flight.py
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """
    Coalesces concurrent calls per key: while one is in flight, later callers
    await the same task. A waiter being cancelled does not cancel the shared task.
    """

    def __init__(self) -> None:
        self._inflight: Dict[Hashable, asyncio.Task] = {}

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def forget(self, key: Optional[Hashable] = None) -> None:
        """Detach in-flight tasks so the next caller starts fresh."""
        if key is None:
            self._inflight.clear()
        else:
            self._inflight.pop(key, None)

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight
