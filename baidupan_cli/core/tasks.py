"""
Keeps fire-and-forget work (blocklist writes, deferred cleanup) alive and
observable without blocking the caller's response path.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

log = logging.getLogger(__name__)


class BackgroundTasks:
    """
    Holds strong references to detached tasks and logs their failures.

    Owners may `drain()` at shutdown to let pending work finish, or
    `cancel_all()` to abandon it.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Schedules `coro` and returns its handle; the caller need not await it."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        if exc := task.exception():
            log.warning(f"Background task '{task.get_name()}' failed: {exc}")

    async def drain(self, timeout: float | None = None) -> bool:
        """
        Waits for pending tasks. Returns True if none remain afterwards.
        """
        if not self._tasks:
            return True
        await asyncio.wait(set(self._tasks), timeout=timeout)
        return not self._tasks

    async def cancel_all(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
