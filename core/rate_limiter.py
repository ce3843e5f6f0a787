"""
File: core/rate_limiter.py
Purpose: Sliding-window admission control with a retry queue for denied sends
"""

import asyncio
import math
from collections import deque
import logging

from core.clock import Clock
from core.models import QueueOutcome, QueuedDelivery, RateDecision

logger = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 3600.0


class SlidingWindowRateLimiter:
    """
    Sliding-window rate limiter

    Features:
    - Global per-minute and per-hour ceilings
    - Per-recipient per-minute ceiling
    - Check and record are separate, so a batch can short-circuit per
      recipient without double counting
    - Denied sends are queued with their send action and retried by
      process_queue() until sent or stale

    Samples are (timestamp, count) pairs kept oldest first. The global
    window holds up to one hour of samples; recipient windows are pruned
    to one hour and forgotten when empty.

    `lock` must be held across any check -> send -> record sequence that
    awaits in between, otherwise two batches can both pass a check that
    should only admit one of them.
    """

    def __init__(self, per_minute=20, per_hour=500, per_recipient=10,
                 stale_after=HOUR, clock=None):
        self.per_minute = per_minute
        self.per_hour = per_hour
        self.per_recipient = per_recipient
        self.stale_after = stale_after
        self.clock = clock or Clock()

        self.global_history = deque()
        self.recipient_history = {}
        self.queued = []

        self.lock = asyncio.Lock()
        self._draining = False

        logger.info(
            f"⚡ SlidingWindowRateLimiter initialized: {per_minute}/min, "
            f"{per_hour}/hour, {per_recipient}/min per recipient"
        )

    # ------------------------------------------------------------------
    # window helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _prune(history, cutoff):
        while history and history[0][0] <= cutoff:
            history.popleft()

    @staticmethod
    def _count_since(history, cutoff):
        """Sum samples newer than cutoff; returns (count, oldest_timestamp)"""
        total = 0
        oldest = None
        for timestamp, count in history:
            if timestamp > cutoff:
                if oldest is None:
                    oldest = timestamp
                total += count
        return total, oldest

    @staticmethod
    def _wait_seconds(window, now, oldest):
        if oldest is None:
            return int(window)
        return max(0, math.ceil(window - (now - oldest)))

    # ------------------------------------------------------------------
    # admission
    # ------------------------------------------------------------------

    def can_send(self, recipient=None):
        """
        Decide whether a send may proceed now

        Checks, first failure wins:
        1. global per-minute ceiling
        2. global per-hour ceiling
        3. per-recipient per-minute ceiling (only with a recipient)

        Returns:
            RateDecision
        """
        now = self.clock.time()

        # Hour window is the longest we keep, prune the stored samples to it
        self._prune(self.global_history, now - HOUR)

        minute_count, minute_oldest = self._count_since(self.global_history, now - MINUTE)
        if minute_count >= self.per_minute:
            return RateDecision.deny(
                'Global per-minute limit exceeded',
                self._wait_seconds(MINUTE, now, minute_oldest),
            )

        hour_count, hour_oldest = self._count_since(self.global_history, now - HOUR)
        if hour_count >= self.per_hour:
            return RateDecision.deny(
                'Global per-hour limit exceeded',
                self._wait_seconds(HOUR, now, hour_oldest),
            )

        if recipient:
            history = self.recipient_history.get(recipient)
            if history:
                self._prune(history, now - MINUTE)
                count, oldest = self._count_since(history, now - MINUTE)
                if count >= self.per_recipient:
                    return RateDecision.deny(
                        'Per-recipient limit exceeded',
                        self._wait_seconds(MINUTE, now, oldest),
                    )

        return RateDecision.allow()

    def record_sent(self, recipient=None):
        """Record one sent message globally and for the recipient"""
        now = self.clock.time()

        self.global_history.append((now, 1))
        if recipient:
            self.recipient_history.setdefault(recipient, deque()).append((now, 1))

        # Cleanup entries older than 1 hour
        cutoff = now - HOUR
        self._prune(self.global_history, cutoff)
        for key in list(self.recipient_history):
            history = self.recipient_history[key]
            self._prune(history, cutoff)
            if not history:
                del self.recipient_history[key]

    # ------------------------------------------------------------------
    # retry queue
    # ------------------------------------------------------------------

    async def queue_message(self, recipient, message, send_action):
        """
        Send now if allowed, otherwise queue for the next drain

        Args:
            recipient: chat id / recipient key
            message: message text (kept for logging and stats)
            send_action: zero-argument coroutine function performing the send

        Returns:
            QueueOutcome: sent, queued (with wait hint) or failed
        """
        async with self.lock:
            decision = self.can_send(recipient)

            if decision.allowed:
                try:
                    await send_action()
                except Exception as e:
                    logger.error(f"❌ Failed to send queued message to {recipient}: {e}")
                    return QueueOutcome(QueueOutcome.FAILED, error=str(e))
                self.record_sent(recipient)
                return QueueOutcome(QueueOutcome.SENT)

            self.queued.append(QueuedDelivery(
                recipient=recipient,
                message=message,
                enqueued_at=self.clock.time(),
                send_action=send_action,
                wait_seconds=decision.wait_seconds,
            ))

        logger.warning(
            f"⏳ Message to {recipient} queued: {decision.reason}, "
            f"retry in ~{decision.wait_seconds}s (queue: {len(self.queued)})"
        )
        return QueueOutcome(QueueOutcome.QUEUED, wait_seconds=decision.wait_seconds)

    async def process_queue(self):
        """
        Retry queued messages, oldest first

        Single-flight: if a previous drain is still running this call
        returns immediately. Items are removed only when sent or stale,
        so a failed send stays queued and anything enqueued mid-drain is
        picked up next cycle.

        Returns:
            int: number of queued messages sent
        """
        if self._draining:
            logger.debug("⏭️ Queue drain already running, skipping")
            return 0
        if not self.queued:
            return 0

        self._draining = True
        sent = 0
        dropped = 0
        try:
            for item in list(self.queued):
                async with self.lock:
                    decision = self.can_send(item.recipient)
                    if decision.allowed:
                        try:
                            await item.send_action()
                        except Exception as e:
                            logger.error(
                                f"❌ Failed to process queued message to {item.recipient}: {e}"
                            )
                        else:
                            self.record_sent(item.recipient)
                            self.queued.remove(item)
                            sent += 1
                            logger.info(f"✅ Processed queued message to {item.recipient}")
                            continue

                # Still waiting (or the retry failed): keep unless stale
                if self.clock.time() - item.enqueued_at > self.stale_after:
                    self.queued.remove(item)
                    dropped += 1
                    logger.warning(
                        f"🗑️ Dropping queued message to {item.recipient} "
                        f"(older than {int(self.stale_after)}s)"
                    )
                else:
                    item.wait_seconds = decision.wait_seconds
        finally:
            self._draining = False

        if sent or dropped:
            logger.info(
                f"🔄 Queue drain: {sent} sent, {dropped} dropped, {len(self.queued)} remaining"
            )
        return sent

    # ------------------------------------------------------------------
    # stats
    # ------------------------------------------------------------------

    def get_stats(self):
        """Get current rate limiter statistics"""
        now = self.clock.time()
        last_minute, _ = self._count_since(self.global_history, now - MINUTE)
        last_hour, _ = self._count_since(self.global_history, now - HOUR)

        return {
            'last_minute_count': last_minute,
            'last_hour_count': last_hour,
            'queue_length': len(self.queued),
            'tracked_recipient_count': len(self.recipient_history),
            'limit_per_minute': self.per_minute,
            'limit_per_hour': self.per_hour,
            'limit_per_recipient': self.per_recipient,
        }
