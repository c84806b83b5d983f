import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("vetconsult.client")


class RepeatingTimer:
    """
    Fires ``callback`` every ``interval`` seconds on the running event loop.

    A slow callback never delays the next tick; instead the tick is skipped
    while the previous callback is still in flight, so slow responses cannot
    pile up into a backlog. ``cancel`` may be called any number of times,
    including from inside the callback.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]], name: str = "timer"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._loop_task: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None
        self.ticks = 0
        self.skipped = 0

    @property
    def active(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self):
        self.cancel()
        self._loop_task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            if self._in_flight is not None and not self._in_flight.done():
                self.skipped += 1
                logger.debug(f"{self.name}: previous tick still running, skipping")
                continue
            self.ticks += 1
            self._in_flight = asyncio.get_running_loop().create_task(self._fire())

    async def _fire(self):
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            # Callbacks own their error handling; a bug must not kill the loop
            logger.exception(f"{self.name}: tick failed")

    def cancel(self):
        current = asyncio.current_task()
        if self._loop_task is not None:
            if self._loop_task is not current:
                self._loop_task.cancel()
            self._loop_task = None
        if self._in_flight is not None:
            if self._in_flight is not current and not self._in_flight.done():
                self._in_flight.cancel()
            self._in_flight = None
