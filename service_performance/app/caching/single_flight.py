"""
Single-flight coordination for concurrent cache misses.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Tuple

from shared.logging import get_logger


class SingleFlight:
    """Collapse concurrent calls for the same key into one in-flight task.

    The first caller for a key starts the task; callers arriving while it is
    running await the same task. The task is shielded, so a cancelled waiter
    does not cancel the call for the others.
    """

    def __init__(self) -> None:
        self._calls: Dict[str, "asyncio.Task[Any]"] = {}
        self.logger = get_logger("performance.single_flight")

    async def do(self, key: str, func: Callable[[], Awaitable[Any]]) -> Tuple[Any, bool]:
        """
        Run ``func`` for ``key`` unless a call is already in flight.

        Returns the result and whether it was shared with an earlier caller.
        """
        task = self._calls.get(key)
        shared = task is not None

        if task is None:
            task = asyncio.ensure_future(func())
            self._calls[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            self.logger.debug("Joined in-flight call", key=key)

        return await asyncio.shield(task), shared

    def in_flight(self, key: str) -> bool:
        task = self._calls.get(key)
        return task is not None and not task.done()

    def _forget(self, key: str, task: "asyncio.Task[Any]") -> None:
        if self._calls.get(key) is task:
            del self._calls[key]
        # Mark the exception retrieved when every waiter went away
        if not task.cancelled():
            task.exception()

    def __len__(self) -> int:
        return sum(1 for task in self._calls.values() if not task.done())
