"""In-process periodic task scheduler.

Runs async jobs on fixed intervals inside the FastAPI event loop.
"""

import asyncio
from typing import Any, Callable, Coroutine

from codepact.shared.utils.logging import get_logger

logger = get_logger(__name__)

Job = Callable[[], Coroutine[Any, Any, Any]]


class PeriodicScheduler:
    """Lightweight periodic task scheduler using asyncio."""

    def __init__(self) -> None:
        self._tasks: list[tuple[str, float, Job]] = []
        self._running = False
        self._handles: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return self._running

    def register(self, name: str, interval_seconds: float, func: Job) -> None:
        """Register a periodic task.

        Args:
            name: Task name used in log events.
            interval_seconds: Seconds between invocations.
            func: Async callable to run periodically.
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._tasks.append((name, interval_seconds, func))

    async def start(self) -> None:
        """Start all registered periodic tasks."""
        if self._running:
            return
        self._running = True
        for name, interval, func in self._tasks:
            handle = asyncio.create_task(self._run_periodic(name, interval, func))
            self._handles.append(handle)
        logger.info("scheduler_started", task_count=len(self._tasks))

    async def stop(self) -> None:
        """Cancel all periodic tasks and wait for them to finish."""
        self._running = False
        for handle in self._handles:
            handle.cancel()
        await asyncio.gather(*self._handles, return_exceptions=True)
        self._handles.clear()
        logger.info("scheduler_stopped")

    async def _run_periodic(self, name: str, interval: float, func: Job) -> None:
        while self._running:
            try:
                await func()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("periodic_task_error", task=name, error=str(e))
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break


__all__ = [
    "PeriodicScheduler",
]
