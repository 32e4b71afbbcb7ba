"""
Periodic task scheduler.

Runs an async callback on a fixed interval inside the running event loop.
``stop()`` cancels the loop and waits for it to unwind, so callers can
shut background work down deterministically.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from trading_core.logging_config import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """
    Repeatedly await ``callback`` every ``interval`` seconds.

    Exceptions raised by the callback are logged and do not end the loop.

    Examples
    --------
    >>> task = PeriodicTask("monitor", 10.0, engine.monitor_orders)
    >>> task.start()
    >>> await task.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: Callable[[], Awaitable[None]],
        run_immediately: bool = False,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.name = name
        self.interval = interval
        self.callback = callback
        self.run_immediately = run_immediately
        self._task: Optional[asyncio.Task] = None
        self.iterations = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop (idempotent)."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug("periodic_task_started", task=self.name, interval=self.interval)

    def cancel(self) -> None:
        """Request cancellation without waiting."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel the loop and wait until it has exited."""
        task = self._task
        if task is None:
            return
        self.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("periodic_task_stopped", task=self.name, iterations=self.iterations)

    async def run_once(self) -> None:
        try:
            await self.callback()
        except Exception:
            logger.exception("periodic_task_failed", task=self.name)
        finally:
            self.iterations += 1

    async def _run(self) -> None:
        if self.run_immediately:
            await self.run_once()
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
