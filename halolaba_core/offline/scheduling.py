# =============================================================================
# halolaba_core/offline/scheduling.py
# Cancellable Periodic Tasks
# =============================================================================

from __future__ import annotations
import asyncio
from typing import Awaitable, Callable, Optional, Union
import logging

logger = logging.getLogger(__name__)

Interval = Union[float, Callable[[], float]]


class PeriodicTask:
    """
    Runs an async callable repeatedly on the event loop until stopped.

    The interval may be a number or a zero-argument callable, re-read before
    every wait. Errors raised by the callable are logged and the loop keeps
    going; stop() cancels the loop and waits for it to finish.

    Usage:
        task = PeriodicTask("low-stock-check", check, interval=300)
        task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[None]],
        interval: Interval,
        run_immediately: bool = False,
    ):
        self.name = name
        self._func = func
        self._interval = interval
        self._run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _next_interval(self) -> float:
        return self._interval() if callable(self._interval) else self._interval

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)
        logger.debug(f"Periodic task started: {self.name}")

    async def stop(self) -> None:
        """Cancel the loop and wait until it has exited."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Periodic task stopped: {self.name}")

    async def _loop(self) -> None:
        if self._run_immediately:
            await self._run_once()
        while True:
            await asyncio.sleep(self._next_interval())
            await self._run_once()

    async def _run_once(self) -> None:
        try:
            await self._func()
        except Exception as e:
            logger.error(f"Error in periodic task {self.name}: {e}", exc_info=True)
