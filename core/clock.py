"""
File: core/clock.py
Purpose: Injectable time source for every timer in the dispatcher
"""

import asyncio
import time


class Clock:
    """
    Wall-clock time and cooperative sleep

    All windows, backoff waits and timers read time through this object,
    so tests can substitute a clock that advances virtual time.
    """

    def time(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))
