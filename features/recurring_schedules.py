"""
File: features/recurring_schedules.py
Purpose: Cron-triggered recurring messages
"""

import asyncio
from datetime import datetime
import logging

from croniter import croniter

from config.timezone_config import format_time_display, get_timezone, is_valid_timezone
from core.clock import Clock

logger = logging.getLogger(__name__)


class CronJob:
    """Timer for one schedule: sleeps until the next cron match, then fires"""

    def __init__(self, definition, on_fire, clock, default_timezone=None):
        self.definition = definition
        self.on_fire = on_fire
        self.clock = clock
        self.timezone = definition.timezone or default_timezone
        self.next_fire_at = None
        self.fire_count = 0
        self._last_fire_at = None
        self._task = None

    def next_occurrence(self, after=None):
        """
        Next cron match strictly after `after` (epoch seconds)

        Returns:
            float: epoch seconds
        """
        tz = get_timezone(self.timezone)
        base = datetime.fromtimestamp(after if after is not None else self.clock.time(), tz)
        return croniter(self.definition.cron, base).get_next(datetime).timestamp()

    def start(self):
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"cron:{self.definition.id}"
        )

    def stop(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self):
        while True:
            base = self.clock.time()
            if self._last_fire_at is not None:
                base = max(base, self._last_fire_at)
            self.next_fire_at = self.next_occurrence(base)

            await self.clock.sleep(self.next_fire_at - self.clock.time())

            self._last_fire_at = self.next_fire_at
            self.fire_count += 1
            try:
                self.on_fire(self.definition)
            except Exception as e:
                logger.error(f"❌ Schedule {self.definition.id} failed to fire: {e}", exc_info=True)


class RecurringScheduler:
    """
    Recurring messages on cron expressions

    Features:
    - One timer per schedule id; re-adding an id replaces its timer
    - Optional per-schedule timezone (default: configured TIMEZONE)
    - Firing hands the batch to the delivery coordinator as a separate task,
      so a slow batch never delays any timer
    - stop() disposes every timer; batches already running finish

    Schedule format (schedules.json):
    {
        "id": "morning-report",
        "recipients": ["@channel", "123456789"],
        "message": "Good morning!",
        "cron": "0 9 * * 1-5",      -- minute hour day month weekday
        "timezone": "Asia/Kolkata", -- optional
        "enabled": true
    }
    """

    def __init__(self, sender, clock=None, default_timezone=None):
        self.sender = sender
        self.clock = clock or Clock()
        self.default_timezone = default_timezone
        self.jobs = {}
        self.is_running = False
        self._in_flight = set()

    def start(self, definitions):
        """Install timers for every enabled definition"""
        if self.is_running:
            logger.warning("⚠️ Scheduler already running")
            return

        definitions = list(definitions or [])
        logger.info(f"📅 Initializing scheduler ({len(definitions)} schedule(s))")

        for definition in definitions:
            if definition.enabled:
                self.add_schedule(definition)
            else:
                logger.debug(f"Schedule {definition.id} disabled, skipping")

        self.is_running = True
        logger.info(f"✅ Scheduler started ({len(self.jobs)} active job(s))")

    def validate(self, definition):
        """
        Check a definition before registering it

        Returns:
            str or None: the problem, or None when valid
        """
        missing = [
            name for name in ('id', 'recipients', 'message', 'cron')
            if not getattr(definition, name)
        ]
        if missing:
            return f"missing {', '.join(missing)}"
        if not croniter.is_valid(definition.cron):
            return f"invalid cron expression '{definition.cron}'"
        if definition.timezone and not is_valid_timezone(definition.timezone):
            return f"unknown timezone '{definition.timezone}'"
        return None

    def add_schedule(self, definition):
        """
        Register (or replace) a schedule

        A disabled definition only removes the timer for its id.

        Returns:
            bool: False if the definition was rejected
        """
        problem = self.validate(definition)
        if problem:
            logger.error(f"❌ Invalid schedule {definition.id or '<no id>'}: {problem}")
            return False

        # Remove existing job if any
        if definition.id in self.jobs:
            self.remove_schedule(definition.id)

        if not definition.enabled:
            logger.info(f"⏸️ Schedule {definition.id} disabled, no timer installed")
            return True

        job = CronJob(definition, self._fire, self.clock, self.default_timezone)
        job.start()
        self.jobs[definition.id] = job

        logger.info(
            f"✅ Schedule {definition.id} added: '{definition.cron}' "
            f"({job.timezone or 'system default'}) -> {len(definition.recipients)} recipient(s)"
        )
        return True

    def remove_schedule(self, schedule_id):
        """Stop and forget a schedule; no-op if absent"""
        job = self.jobs.pop(schedule_id, None)
        if job is None:
            return False
        job.stop()
        logger.info(f"🗑️ Schedule {schedule_id} removed")
        return True

    def _fire(self, definition):
        logger.info(f"⏰ Executing schedule {definition.id}")
        task = asyncio.get_running_loop().create_task(
            self._deliver(definition), name=f"batch:{definition.id}"
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _deliver(self, definition):
        try:
            await self.sender.deliver_batch(
                list(definition.recipients), definition.message, label=definition.id
            )
        except Exception as e:
            logger.error(f"❌ Failed to execute schedule {definition.id}: {e}", exc_info=True)

    def stop(self):
        """Dispose every timer"""
        for job in self.jobs.values():
            job.stop()
        self.jobs.clear()
        self.is_running = False
        logger.info("⏹️ Scheduler stopped")

    @property
    def in_flight(self):
        return set(self._in_flight)

    async def wait_for_in_flight(self, timeout=None):
        """
        Wait for running batches

        Returns:
            int: batches still running when the timeout expired
        """
        if not self._in_flight:
            return 0
        _, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
        if pending:
            logger.warning(f"⚠️ {len(pending)} recurring batch(es) still running")
        return len(pending)

    def get_schedules(self):
        """Snapshot of active schedules"""
        schedules = []
        for job in self.jobs.values():
            entry = job.definition.to_dict()
            entry['timezone'] = job.timezone
            entry['next_fire_at'] = job.next_fire_at
            entry['next_fire_display'] = (
                format_time_display(job.next_fire_at, job.timezone)
                if job.next_fire_at is not None else None
            )
            schedules.append(entry)
        return schedules
