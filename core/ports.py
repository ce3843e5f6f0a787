"""
File: core/ports.py
Purpose: Minimal contracts the core needs from its collaborators

The core never imports a concrete transport or store; anything that
satisfies these protocols can be plugged in (tests use in-memory fakes).
"""

from typing import Awaitable, Callable, List, Protocol

from core.models import ConnectionState, OneTimeJob, ScheduleDefinition, TransportFault


class Transport(Protocol):
    """Messaging transport operations required by the core"""

    async def send(self, recipient: str, text: str) -> None:
        """Deliver text; raise SendFailedError on failure"""
        ...

    def connection_state(self) -> ConnectionState:
        ...

    async def initialize(self) -> None:
        ...

    async def shutdown(self) -> None:
        ...

    def on(self, event: str, callback: Callable[..., Awaitable[None]]) -> None:
        """Subscribe to 'connected', 'disconnected' or 'error' events"""
        ...


class ScheduleStore(Protocol):
    """Persistence operations required by the schedulers"""

    def load_schedules(self) -> List[ScheduleDefinition]:
        ...

    def load_one_time_jobs(self) -> List[OneTimeJob]:
        ...

    def save_one_time_jobs(self, jobs: List[OneTimeJob]) -> None:
        ...

    def save_schedule(self, definition: ScheduleDefinition) -> None:
        ...

    def delete_schedule(self, schedule_id: str) -> bool:
        ...
