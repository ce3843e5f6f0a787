"""
File: core/models.py
Purpose: Records shared by the rate limiter, schedulers, sender and supervisor

These dataclasses keep the core free of transport- and storage-specific
types. Timestamps are epoch seconds taken from the injected clock.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple


class FaultKind(Enum):
    """Structured classification of a transport failure"""

    TRANSIENT = 'transient'  # recoverable, restart the session
    LOGOUT = 'logout'  # credentials rejected, needs re-authentication
    UNKNOWN = 'unknown'  # classify from the reason text


class ConnectionState(Enum):
    CONNECTED = 'connected'
    DISCONNECTED = 'disconnected'
    RESTARTING = 'restarting'


@dataclass(frozen=True)
class TransportFault:
    """Payload of a transport disconnect/error event"""

    reason: str
    kind: FaultKind = FaultKind.UNKNOWN


@dataclass(frozen=True)
class ScheduleDefinition:
    """A cron-triggered message to one or many recipients"""

    id: str
    recipients: Tuple[str, ...]
    message: str
    cron: str
    timezone: Optional[str] = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, raw):
        """
        Build from a config record

        Accepts either 'recipients' (list or comma string) or the
        single 'recipient' key used by older schedules.json files.
        """
        from utils.validators import parse_recipients

        recipients = raw.get('recipients')
        if recipients is None:
            recipients = raw.get('recipient')
        return cls(
            id=str(raw.get('id') or ''),
            recipients=tuple(parse_recipients(recipients)),
            message=raw.get('message') or '',
            cron=raw.get('cron') or '',
            timezone=raw.get('timezone') or None,
            enabled=bool(raw.get('enabled', True)),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'recipients': list(self.recipients),
            'message': self.message,
            'cron': self.cron,
            'timezone': self.timezone,
            'enabled': self.enabled,
        }


@dataclass(frozen=True)
class OneTimeJob:
    """A message that fires exactly once at fire_at"""

    id: str
    recipients: Tuple[str, ...]
    message: str
    fire_at: float

    def to_dict(self):
        return {
            'id': self.id,
            'recipients': list(self.recipients),
            'message': self.message,
            'fire_at': self.fire_at,
        }


@dataclass(frozen=True)
class RateDecision:
    """Outcome of an admission check"""

    allowed: bool
    reason: Optional[str] = None
    wait_seconds: int = 0

    @classmethod
    def allow(cls):
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason, wait_seconds):
        return cls(allowed=False, reason=reason, wait_seconds=wait_seconds)


@dataclass
class QueuedDelivery:
    """A rate-limited send waiting for the next drain"""

    recipient: str
    message: str
    enqueued_at: float
    send_action: Callable[[], Awaitable[Any]]
    wait_seconds: int = 0


@dataclass(frozen=True)
class QueueOutcome:
    SENT = 'sent'
    QUEUED = 'queued'
    FAILED = 'failed'

    status: str
    wait_seconds: int = 0
    error: Optional[str] = None

    @property
    def sent(self):
        return self.status == self.SENT

    @property
    def queued(self):
        return self.status == self.QUEUED


@dataclass
class BatchResult:
    """Aggregate outcome of one deliver_batch call"""

    total: int
    success_count: int = 0
    fail_count: int = 0
    queued_count: int = 0
    failed_recipients: list = field(default_factory=list)

    def as_dict(self):
        return {
            'successCount': self.success_count,
            'failCount': self.fail_count,
            'total': self.total,
            'queued': self.queued_count,
        }
