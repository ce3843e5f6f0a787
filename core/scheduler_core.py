"""
File: core/scheduler_core.py
Purpose: Main scheduler orchestration class
"""

import asyncio
import logging

from config.settings import (
    ALERT_COOLDOWN_SECONDS,
    ALERT_HISTORY_LIMIT,
    INTER_RECIPIENT_DELAY,
    KEEPALIVE_INTERVAL,
    MAX_RECONNECT_RETRIES,
    ONE_TIME_POLL_INTERVAL,
    ONE_TIME_SAVE_INTERVAL,
    ONE_TIME_STALE_SECONDS,
    QUEUE_DRAIN_INTERVAL,
    QUEUE_STALE_SECONDS,
    RATE_LIMIT_PER_HOUR,
    RATE_LIMIT_PER_MINUTE,
    RATE_LIMIT_PER_RECIPIENT,
    RECONNECT_BACKOFF,
    RECONNECT_INITIAL_DELAY,
    RECONNECT_MAX_DELAY,
    SHUTDOWN_GRACE_SECONDS,
    TIMEZONE,
)
from core.clock import Clock
from core.connection_supervisor import ConnectionSupervisor
from core.models import ScheduleDefinition
from core.periodic import PeriodicTask
from core.ports import ScheduleStore, Transport
from core.rate_limiter import SlidingWindowRateLimiter
from core.sender import DeliveryCoordinator
from features.alerts import AlertSystem
from features.one_time_scheduler import OneTimeScheduler
from features.recurring_schedules import RecurringScheduler
from utils.time_parser import parse_fire_at
from utils.validators import parse_recipients

logger = logging.getLogger(__name__)


class SchedulerCore:
    """
    Main scheduler orchestration class

    Coordinates:
    - Rate limiting and the retry queue drain (rate_limiter)
    - Sequential multi-recipient delivery (sender)
    - Cron schedules (recurring) and one-shot jobs (one_time)
    - Transport reconnection (supervisor)
    - Operator alerts (alerts)

    Tuning defaults come from config.settings; any of them can be
    overridden by keyword.
    """

    def __init__(self, transport: Transport, store: ScheduleStore, clock=None, alerts=None, *,
                 per_minute=RATE_LIMIT_PER_MINUTE,
                 per_hour=RATE_LIMIT_PER_HOUR,
                 per_recipient=RATE_LIMIT_PER_RECIPIENT,
                 queue_stale_after=QUEUE_STALE_SECONDS,
                 queue_drain_interval=QUEUE_DRAIN_INTERVAL,
                 inter_recipient_delay=INTER_RECIPIENT_DELAY,
                 one_time_poll_interval=ONE_TIME_POLL_INTERVAL,
                 one_time_save_interval=ONE_TIME_SAVE_INTERVAL,
                 one_time_stale_after=ONE_TIME_STALE_SECONDS,
                 max_reconnect_attempts=MAX_RECONNECT_RETRIES,
                 reconnect_initial_delay=RECONNECT_INITIAL_DELAY,
                 reconnect_max_delay=RECONNECT_MAX_DELAY,
                 reconnect_backoff=RECONNECT_BACKOFF,
                 keepalive_interval=KEEPALIVE_INTERVAL,
                 shutdown_grace=SHUTDOWN_GRACE_SECONDS,
                 timezone=TIMEZONE):
        self.transport = transport
        self.store = store
        self.clock = clock or Clock()
        self.timezone = timezone
        self.shutdown_grace = shutdown_grace
        self.alerts = alerts or AlertSystem(
            self.clock, cooldown=ALERT_COOLDOWN_SECONDS, history_limit=ALERT_HISTORY_LIMIT
        )

        self.rate_limiter = SlidingWindowRateLimiter(
            per_minute=per_minute,
            per_hour=per_hour,
            per_recipient=per_recipient,
            stale_after=queue_stale_after,
            clock=self.clock,
        )
        self.sender = DeliveryCoordinator(
            transport,
            self.rate_limiter,
            clock=self.clock,
            inter_recipient_delay=inter_recipient_delay,
            alerts=self.alerts,
        )
        self.recurring = RecurringScheduler(
            self.sender, clock=self.clock, default_timezone=timezone
        )
        self.one_time = OneTimeScheduler(
            self.sender,
            store,
            clock=self.clock,
            poll_interval=one_time_poll_interval,
            save_interval=one_time_save_interval,
            stale_after=one_time_stale_after,
            display_timezone=timezone,
        )
        self.supervisor = ConnectionSupervisor(
            transport,
            clock=self.clock,
            max_attempts=max_reconnect_attempts,
            base_delay=reconnect_initial_delay,
            max_delay=reconnect_max_delay,
            multiplier=reconnect_backoff,
            keepalive_interval=keepalive_interval,
            alerts=self.alerts,
        )
        self._queue_drain = PeriodicTask(
            'queue-drain', queue_drain_interval, self.rate_limiter.process_queue, self.clock
        )
        self.is_running = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self):
        """
        Connect the transport and start every timer

        A failed first connection is not fatal: the supervisor's
        keep-alive keeps retrying with backoff.
        """
        if self.is_running:
            logger.warning("⚠️ Scheduler core already running")
            return

        logger.info("🚀 Starting scheduler core")
        self.supervisor.attach()
        try:
            await self.transport.initialize()
        except Exception as e:
            logger.error(f"❌ Initial transport connection failed: {e}")

        self.recurring.start(self.store.load_schedules())
        await self.one_time.start()
        self._queue_drain.start()
        self.supervisor.start_keepalive()

        self.is_running = True
        logger.info("✅ Scheduler core started")

    async def stop(self):
        """
        Dispose every timer, persist pending one-time jobs, close the transport

        Batches already running get up to `shutdown_grace` seconds to finish.
        """
        if not self.is_running:
            return

        logger.info("🛑 Stopping scheduler core")
        self.recurring.stop()
        self._queue_drain.stop()
        self.supervisor.stop()
        await self.one_time.stop()

        running = len(self.recurring.in_flight) + len(self.one_time.in_flight)
        if running:
            logger.info(f"⏳ Waiting for {running} running batch(es)")
            loop = asyncio.get_running_loop()
            deadline = loop.time() + self.shutdown_grace
            pending = await self.recurring.wait_for_in_flight(self.shutdown_grace)
            pending += await self.one_time.wait_for_in_flight(max(0.0, deadline - loop.time()))
            if pending:
                logger.warning(f"⚠️ {pending} batch(es) still running at shutdown")

        if self.rate_limiter.queued:
            logger.warning(
                f"⚠️ {len(self.rate_limiter.queued)} queued message(s) not delivered before shutdown"
            )

        try:
            await self.transport.shutdown()
        except Exception as e:
            logger.error(f"❌ Error closing transport: {e}")

        self.is_running = False
        logger.info("✅ Scheduler core stopped")

    # =========================================================================
    # RECURRING SCHEDULES
    # =========================================================================

    def add_schedule(self, definition, persist=True):
        """
        Register (or replace) a cron schedule

        Args:
            definition: ScheduleDefinition or a schedules.json style dict
            persist: also write it to the store

        Returns:
            bool: False if rejected

        Raises:
            StoreError: the store write failed; no timer was installed
        """
        if isinstance(definition, dict):
            definition = ScheduleDefinition.from_dict(definition)

        problem = self.recurring.validate(definition)
        if problem:
            logger.error(f"❌ Invalid schedule {definition.id or '<no id>'}: {problem}")
            return False

        # Persist before the timer goes live
        if persist:
            self.store.save_schedule(definition)
        return self.recurring.add_schedule(definition)

    def remove_schedule(self, schedule_id, persist=True):
        removed = self.recurring.remove_schedule(schedule_id)
        if persist:
            removed = self.store.delete_schedule(schedule_id) or removed
        return removed

    def get_schedules(self):
        return self.recurring.get_schedules()

    # =========================================================================
    # ONE-TIME JOBS
    # =========================================================================

    def add_one_time_job(self, recipients, message, fire_at):
        """
        Schedule a one-shot message

        Args:
            recipients: list or comma separated string
            message: message text
            fire_at: epoch seconds/ms or a time string ("30m", "tomorrow 9am")

        Returns:
            OneTimeJob: the stored job
        """
        fire_at = parse_fire_at(fire_at, now=self.clock.time(), tz_name=self.timezone)
        job = self.one_time.create_job(recipients, message, fire_at)
        return self.one_time.add_one_time_job(job)

    def get_pending_jobs(self):
        return self.one_time.get_pending_jobs()

    # =========================================================================
    # RATE LIMITING
    # =========================================================================

    def can_send(self, recipient=None):
        return self.rate_limiter.can_send(recipient)

    def record_sent(self, recipient=None):
        self.rate_limiter.record_sent(recipient)

    async def queue_message(self, recipient, message, send_action=None):
        """Send through the limiter, queueing if denied"""
        if send_action is None:
            send_action = self.sender.make_send_action(recipient, message)
        return await self.rate_limiter.queue_message(recipient, message, send_action)

    def get_stats(self):
        return self.rate_limiter.get_stats()

    # =========================================================================
    # DELIVERY
    # =========================================================================

    async def send_now(self, recipients, message):
        """Immediate batch to one or many recipients"""
        return await self.sender.deliver_batch(
            parse_recipients(recipients), message, label='send-now'
        )

    # =========================================================================
    # CONNECTION
    # =========================================================================

    async def restart(self, reason='manual'):
        return await self.supervisor.restart(reason)

    def reset_connection(self):
        self.supervisor.reset()

    def get_status(self):
        """Get overall dispatcher status"""
        return {
            'running': self.is_running,
            'connection': self.supervisor.get_status(),
            'rate_limiter': self.rate_limiter.get_stats(),
            'active_schedules': len(self.recurring.jobs),
            'pending_one_time_jobs': len(self.one_time.jobs),
            'recent_alerts': self.alerts.get_recent_alerts(5),
        }
