import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ScheduledTask:
    """A delayed coroutine that can be cancelled.

    Owned by whoever schedules it; cancelling is idempotent.  The callback's
    own exceptions are logged here since nothing awaits the task.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[None]], label: str = "timer"):
        self.delay = delay
        self.callback = callback
        self.label = label
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "ScheduledTask":
        self.cancel()
        self._task = asyncio.create_task(self._run())
        return self

    def cancel(self) -> None:
        if self._task and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None

    async def _run(self):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            return
        try:
            await self.callback()
        except Exception as e:
            logger.error("Scheduled task %s failed: %s", self.label, e)
