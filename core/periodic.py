"""
File: core/periodic.py
Purpose: Interval timer on the event loop (queue drain, one-time poll, keep-alive)
"""

import asyncio
import logging

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Run a coroutine function every `interval` seconds

    Each tick is spawned as its own task, so a slow tick never delays the
    timer and stopping the timer never aborts a tick that is already
    running. Callbacks that must not overlap guard themselves.
    """

    def __init__(self, name, interval, callback, clock, run_immediately=False):
        self.name = name
        self.interval = interval
        self.callback = callback
        self.clock = clock
        self.run_immediately = run_immediately
        self._task = None
        self._ticks = set()

    @property
    def is_running(self):
        return self._task is not None and not self._task.done()

    def start(self):
        if self.is_running:
            logger.warning(f"⚠️ Periodic task {self.name} already running")
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"periodic:{self.name}")
        logger.debug(f"⏰ Periodic task {self.name} started (every {self.interval}s)")

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug(f"⏹️ Periodic task {self.name} stopped")

    async def _run(self):
        if self.run_immediately:
            self._spawn_tick()
        while True:
            await self.clock.sleep(self.interval)
            self._spawn_tick()

    def _spawn_tick(self):
        tick = asyncio.get_running_loop().create_task(self._tick())
        self._ticks.add(tick)
        tick.add_done_callback(self._ticks.discard)

    async def _tick(self):
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Periodic task {self.name} failed: {e}", exc_info=True)
