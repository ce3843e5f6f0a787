"""
File: core/exceptions.py
Purpose: Exceptions raised across the dispatcher
"""


class DispatchError(Exception):
    """Base class for dispatcher errors"""


class SendFailedError(DispatchError):
    """The transport could not deliver a message to one recipient"""

    def __init__(self, recipient, detail):
        self.recipient = recipient
        self.detail = detail
        super().__init__(f"Send to {recipient} failed: {detail}")


class InvalidScheduleError(DispatchError):
    """A schedule or one-time job is missing fields or has a bad cron/timezone"""


class StoreError(DispatchError):
    """Persisted schedule/job state could not be read or written"""
