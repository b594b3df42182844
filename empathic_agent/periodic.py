import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Runs an async tick repeatedly on the event loop.

    The next tick is scheduled only after the previous one finishes,
    followed by ``interval`` seconds of sleep, so ticks never overlap.
    ``stop()`` cancels the underlying task: a pending sleep or an
    in-flight await is interrupted and no further tick runs.
    A tick that raises is logged and the loop keeps going.
    """

    def __init__(self, name: str, interval: float, tick: Callable[[], Awaitable[None]]):
        self.name = name
        self.interval = interval
        self._tick = tick
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start ticking. Returns False if already running."""
        if self.running:
            return False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        return True

    def stop(self):
        """Cancel the loop. Safe to call when not running."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def is_current(self, task: Optional[asyncio.Task]) -> bool:
        """True if ``task`` is the live task of this loop."""
        return task is not None and task is self._task and not task.cancelled()

    async def _run(self):
        while True:
            try:
                await self._tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in {self.name} tick: {e}")
            await asyncio.sleep(self.interval)
