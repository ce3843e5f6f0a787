"""
File: features/alerts.py
Purpose: Operator-visible alerts with per-type cooldown
"""

import asyncio
from collections import deque
import logging

from core.clock import Clock

logger = logging.getLogger(__name__)


class AlertSystem:
    """
    Raise operator alerts without flooding

    Every alert is logged at ERROR and kept in a bounded history. When a
    notifier is configured (e.g. a send to the admin chat) it is called
    in the background; a failing notifier never breaks the caller.
    The same alert type is suppressed for `cooldown` seconds.
    """

    def __init__(self, clock=None, notifier=None, cooldown=300, history_limit=100):
        self.clock = clock or Clock()
        self.notifier = notifier
        self.cooldown = cooldown
        self.history = deque(maxlen=history_limit)
        self.last_alert_times = {}
        self._pending = set()

    def trigger_alert(self, alert_type, message, **data):
        """
        Record and forward an alert

        Returns:
            bool: False if suppressed by the cooldown
        """
        now = self.clock.time()
        last = self.last_alert_times.get(alert_type)
        if last is not None and now - last < self.cooldown:
            return False

        self.last_alert_times[alert_type] = now
        alert = {'type': alert_type, 'timestamp': now, 'message': message, **data}
        self.history.append(alert)

        logger.error(f"🚨 [ALERT] {message}")

        if self.notifier is not None:
            self._notify(f"🚨 ALERT: {message}")
        return True

    def _notify(self, text):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, alert not forwarded")
            return
        task = loop.create_task(self._deliver(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, text):
        try:
            await self.notifier(text)
        except Exception as e:
            logger.error(f"Failed to notify admin: {e}")

    def trigger_session_expired(self, reason=None):
        return self.trigger_alert(
            'session_expired',
            'Transport session has expired. Re-authentication required.',
            reason=reason,
        )

    def trigger_auth_failure(self, reason):
        return self.trigger_alert(
            'authentication_failure', f"Authentication failed: {reason}", reason=reason
        )

    def trigger_restart_exhausted(self, attempts, reason=None):
        return self.trigger_alert(
            'restart_exhausted',
            f"Transport restart gave up after {attempts} attempts",
            attempts=attempts,
            reason=reason,
        )

    def trigger_rate_limit_exceeded(self, recipient, reason, wait_seconds):
        return self.trigger_alert(
            'rate_limit_exceeded',
            f"Rate limit exceeded for {recipient}: {reason}",
            recipient=recipient,
            reason=reason,
            wait_seconds=wait_seconds,
        )

    def get_recent_alerts(self, limit=10):
        """Most recent alerts first"""
        return list(self.history)[-limit:][::-1]
