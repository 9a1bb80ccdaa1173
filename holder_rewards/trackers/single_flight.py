import asyncio
from typing import Any, Awaitable, Callable, Dict, Hashable


def _retrieve_exception(task: asyncio.Task) -> None:
    # Every waiter may have been cancelled; mark the failure as seen
    if not task.cancelled():
        task.exception()


class SingleFlight:
    """
    At most one in-flight computation per key. Late callers await the task
    already running for their key instead of starting another one; the slot is
    cleared under the lock before the task's result is published.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tasks

    async def do(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        async with self._lock:
            task = self._tasks.get(key)
            if task is None:
                task = asyncio.ensure_future(self._run(key, factory))
                task.add_done_callback(_retrieve_exception)
                self._tasks[key] = task
        # shield: one caller being cancelled must not cancel the shared refresh
        return await asyncio.shield(task)

    async def _run(self, key: Hashable, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await factory()
        finally:
            async with self._lock:
                if self._tasks.get(key) is asyncio.current_task():
                    del self._tasks[key]
