from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class TaskRunner:
    """Supervised fire-and-forget tasks.

    Keeps a strong reference to every submitted task, logs failures in one
    place and cancels whatever is still running on shutdown. Nothing here is
    durable: a task that has not finished when the process exits is lost.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._context: dict[asyncio.Task[Any], dict[str, Any]] = {}
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, factory: TaskFactory, *, name: str, **context: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(self._run(factory), name=name)
        self._tasks.add(task)
        self._context[task] = context
        task.add_done_callback(self._on_done)
        return task

    def schedule(self, delay_seconds: float, factory: TaskFactory, *, name: str, **context: Any) -> asyncio.Task[Any]:
        async def delayed() -> Any:
            await asyncio.sleep(max(delay_seconds, 0.0))
            return await factory()

        return self.submit(delayed, name=name, **context)

    @staticmethod
    async def _run(factory: TaskFactory) -> Any:
        return await factory()

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        context = self._context.pop(task, {})
        if task.cancelled():
            LOGGER.debug("Background task cancelled. task=%s", task.get_name())
            return
        error = task.exception()
        if error is None:
            return
        self.failures += 1
        LOGGER.error(
            "Background task failed. task=%s context=%s",
            task.get_name(),
            context,
            exc_info=error,
            extra={"task": task.get_name(), "task_context": context},
        )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for everything currently submitted, including tasks submitted meanwhile."""
        while self._tasks:
            await asyncio.wait(set(self._tasks), timeout=timeout)
            if timeout is not None:
                break

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        LOGGER.info("Background task runner stopped. cancelled=%s", len(tasks))
