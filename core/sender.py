"""
File: core/sender.py
Purpose: Sequential multi-recipient delivery through the rate limiter
"""

import time
import logging

from core.clock import Clock
from core.models import BatchResult
from utils.validators import validate_message

logger = logging.getLogger(__name__)


class DeliveryCoordinator:
    """
    Sends one message to a list of recipients, one at a time

    Recipients are handled sequentially: the transport and the rate
    windows are shared, and parallel sends would defeat per-recipient
    pacing.

    Per recipient:
    - allowed  -> send, record, pause `inter_recipient_delay` (not after the last)
    - denied   -> hand a send closure to the rate limiter queue, move on
    - failure  -> count it, move on
    """

    def __init__(self, transport, rate_limiter, clock=None, inter_recipient_delay=3.0,
                 alerts=None):
        self.transport = transport
        self.rate_limiter = rate_limiter
        self.clock = clock or Clock()
        self.inter_recipient_delay = inter_recipient_delay
        self.alerts = alerts

    def make_send_action(self, recipient, message):
        """Closure that performs the real send, for the retry queue"""
        async def send():
            await self.transport.send(recipient, message)
        return send

    async def deliver_batch(self, recipients, message, label=None):
        """
        Deliver `message` to every recipient

        Args:
            recipients: ordered list of recipient ids
            message: message text
            label: schedule/job id used in logs

        Returns:
            BatchResult: success_count, fail_count (queued sends included), total

        Raises:
            ValueError: on an empty message or recipient list
        """
        recipients = list(recipients or [])
        validate_message(message)
        if not recipients:
            raise ValueError("At least one recipient is required")

        tag = f"[{label}] " if label else ""
        result = BatchResult(total=len(recipients))
        start_time = time.monotonic()
        logger.info(f"🚀 {tag}BATCH START: {len(recipients)} recipient(s)")

        for index, recipient in enumerate(recipients):
            is_last = index == len(recipients) - 1
            try:
                async with self.rate_limiter.lock:
                    decision = self.rate_limiter.can_send(recipient)
                    if decision.allowed:
                        await self.transport.send(recipient, message)
                        self.rate_limiter.record_sent(recipient)
            except Exception as e:
                result.fail_count += 1
                result.failed_recipients.append(recipient)
                logger.error(f"❌ {tag}Failed to send to {recipient}: {e}")
                continue

            if not decision.allowed:
                logger.warning(
                    f"⏳ {tag}{recipient} rate limited ({decision.reason}), queueing"
                )
                if self.alerts is not None:
                    self.alerts.trigger_rate_limit_exceeded(
                        recipient, decision.reason, decision.wait_seconds
                    )
                outcome = await self.rate_limiter.queue_message(
                    recipient, message, self.make_send_action(recipient, message)
                )
                if outcome.sent:
                    result.success_count += 1
                else:
                    result.fail_count += 1
                    result.failed_recipients.append(recipient)
                    if outcome.queued:
                        result.queued_count += 1
                continue

            result.success_count += 1
            logger.info(f"✅ {tag}Sent to {recipient} ({index + 1}/{len(recipients)})")

            if not is_last and self.inter_recipient_delay > 0:
                await self.clock.sleep(self.inter_recipient_delay)

        elapsed = time.monotonic() - start_time
        logger.info(
            f"🎉 {tag}BATCH COMPLETE: {result.success_count} sent, "
            f"{result.fail_count} failed ({result.queued_count} queued), "
            f"{result.total} total in {elapsed:.1f}s"
        )
        return result
