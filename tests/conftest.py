import asyncio
from collections import defaultdict

from core.exceptions import SendFailedError
from core.models import BatchResult, ConnectionState

# 2023-11-14 22:13:20 UTC
START = 1_700_000_000.0


class FakeClock:
    """Virtual time: sleep() parks until advance() moves past its wake time"""

    def __init__(self, start: float = START) -> None:
        self.now = start
        self.sleeps = []
        self._sleepers = []
        self._seq = 0

    def time(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        seconds = max(0.0, seconds)
        self.sleeps.append(seconds)
        if seconds == 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._seq += 1
        self._sleepers.append((self.now + seconds, self._seq, future))
        await future

    async def settle(self, rounds: int = 25) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        """Move time forward, waking sleepers in wake-time order"""
        target = self.now + seconds
        await self.settle()
        while True:
            self._sleepers = [s for s in self._sleepers if not s[2].done()]
            due = [s for s in self._sleepers if s[0] <= target]
            if not due:
                break
            sleeper = min(due, key=lambda s: (s[0], s[1]))
            self._sleepers.remove(sleeper)
            self.now = max(self.now, sleeper[0])
            sleeper[2].set_result(None)
            await self.settle()
        self.now = target
        await self.settle()


class FakeTransport:
    def __init__(self) -> None:
        self.sent = []
        self.fail_for = set()
        self.state = ConnectionState.CONNECTED
        self.initialize_calls = 0
        self.shutdown_calls = 0
        self.initialize_error = None
        self.listeners = defaultdict(list)
        self._tasks = set()

    async def send(self, recipient: str, text: str) -> None:
        if recipient in self.fail_for:
            raise SendFailedError(recipient, 'chat not found')
        self.sent.append((recipient, text))

    def connection_state(self) -> ConnectionState:
        return self.state

    async def initialize(self) -> None:
        self.initialize_calls += 1
        if self.initialize_error is not None:
            raise self.initialize_error
        self.state = ConnectionState.CONNECTED
        # like the real transport, listeners run as their own tasks
        for callback in self.listeners['connected']:
            task = asyncio.get_running_loop().create_task(callback())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        self.state = ConnectionState.DISCONNECTED

    def on(self, event: str, callback) -> None:
        self.listeners[event].append(callback)

    async def emit(self, event: str, *args) -> None:
        for callback in self.listeners[event]:
            await callback(*args)


class MemoryStore:
    def __init__(self, schedules=None, jobs=None) -> None:
        self.schedules = {s.id: s for s in (schedules or [])}
        self.jobs = list(jobs or [])
        self.job_saves = 0

    def load_schedules(self):
        return list(self.schedules.values())

    def save_schedule(self, definition) -> None:
        self.schedules[definition.id] = definition

    def delete_schedule(self, schedule_id: str) -> bool:
        return self.schedules.pop(schedule_id, None) is not None

    def load_one_time_jobs(self):
        return list(self.jobs)

    def save_one_time_jobs(self, jobs) -> None:
        self.job_saves += 1
        self.jobs = list(jobs)


class RecordingSender:
    """Stands in for DeliveryCoordinator; optionally blocks until released"""

    def __init__(self, block: bool = False) -> None:
        self.calls = []
        self.release = asyncio.Event() if block else None

    async def deliver_batch(self, recipients, message, label=None):
        self.calls.append((list(recipients), message, label))
        if self.release is not None:
            await self.release.wait()
        return BatchResult(total=len(recipients), success_count=len(recipients))
