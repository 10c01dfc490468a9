"""Best-effort work that runs after the chat response has been sent."""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from fastapi import BackgroundTasks

from dachsbau.config import settings

logger = logging.getLogger(__name__)


class DeferredTasks:
    """
    Queue of post-response coroutines.

    Tasks are stored as (name, function, args) and only called when run, so a
    request that never reaches the response leaves no un-awaited coroutines.
    Nothing on the response path may depend on these finishing.
    """

    def __init__(self, timeout_seconds: float | None = None):
        self.timeout_seconds = timeout_seconds or settings.deferred_timeout_seconds
        self._tasks: list[tuple[str, Callable[..., Awaitable[Any]], tuple]] = []

    def add(self, name: str, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        self._tasks.append((name, func, args))

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def names(self) -> list[str]:
        return [name for name, _, _ in self._tasks]

    async def run_all(self) -> int:
        """Run every queued task; returns how many failed or timed out."""
        failures = 0
        tasks, self._tasks = self._tasks, []
        for name, func, args in tasks:
            try:
                await asyncio.wait_for(func(*args), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                failures += 1
                logger.warning("Deferred task %s timed out after %.1fs", name, self.timeout_seconds)
            except Exception:
                failures += 1
                logger.exception("Deferred task %s failed", name)
        return failures

    def attach(self, background: BackgroundTasks) -> BackgroundTasks:
        """Hand the queue to FastAPI so it runs once the response is out."""
        if self._tasks:
            background.add_task(self.run_all)
        return background
