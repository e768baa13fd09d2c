import asyncio
from collections.abc import Coroutine
from typing import Any

from .logging import LogEventType, get_logger

logger = get_logger(__name__)


class BackgroundTasks:
    """Tracks fire-and-forget tasks so they are not garbage collected,
    their failures are logged and shutdown can wait for them."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task failed",
                event_type=LogEventType.ERROR,
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for pending tasks; cancel whatever is left after ``timeout``."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            logger.warning(
                "Cancelled unfinished background tasks",
                event_type=LogEventType.SHUTDOWN,
                cancelled=len(not_done),
            )
            await asyncio.gather(*not_done, return_exceptions=True)
