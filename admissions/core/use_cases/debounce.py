"""
Trailing debounce timer with a single pending slot.

``schedule()`` (re)starts the quiet period; only the last call in a burst
runs the callback. Once the quiet period has elapsed the callback is past
the cancellable window: a new ``schedule()`` starts a fresh timer and
leaves the running callback alone.
"""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class DebounceTimer:

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]]):
        self._delay = delay
        self._callback = callback
        self._pending: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def schedule(self) -> None:
        self.cancel()
        task = asyncio.get_running_loop().create_task(self._run())
        self._pending = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def cancel(self) -> bool:
        """Drops the pending run, if any. Returns whether one was dropped."""
        task, self._pending = self._pending, None
        if task is not None and not task.done():
            task.cancel()
            return True
        return False

    async def flush(self) -> None:
        """Runs the pending callback now instead of after the quiet period."""
        if self.cancel():
            await self._callback()

    async def wait_idle(self) -> None:
        """Waits for callbacks already past their quiet period."""
        running = [t for t in self._running if t is not self._pending]
        if running:
            await asyncio.gather(*running, return_exceptions=True)

    async def _run(self) -> None:
        await asyncio.sleep(self._delay)
        if self._pending is asyncio.current_task():
            self._pending = None
        try:
            await self._callback()
        except Exception:
            logger.exception("Debounced callback failed")
