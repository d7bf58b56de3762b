"""Fire-and-forget background work that must not block the sync loop."""

import asyncio
import logging
from typing import Coroutine, Optional

logger = logging.getLogger("geolocbot.tasks")


class BackgroundTasks:
    """Runs coroutines as independent tasks and logs whatever they raise.

    Usage:
        tasks = BackgroundTasks()
        tasks.spawn(reconcile(...), name="reconcile:!room")
        # ... on shutdown ...
        await tasks.shutdown()
    """

    def __init__(self):
        # asyncio only keeps weak references to tasks
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine, name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it.

        Args:
            coro: Coroutine to run
            name: Task name, shown in logs

        Returns:
            The created task (callers may ignore it)
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {type(exc).__name__}: {exc}",
                exc_info=exc,
            )

    async def join(self):
        """Wait until every task spawned so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self):
        """Cancel outstanding tasks. Only used when the process stops."""
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Cancelled {len(pending)} background task(s)")
