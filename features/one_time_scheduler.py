"""
File: features/one_time_scheduler.py
Purpose: Messages that fire exactly once at a future time
"""

import asyncio
import logging
import random
import string

from config.timezone_config import format_time_display
from core.clock import Clock
from core.exceptions import InvalidScheduleError
from core.models import OneTimeJob
from core.periodic import PeriodicTask
from utils.validators import parse_recipients

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


class OneTimeScheduler:
    """
    Poll-driven one-shot jobs

    Features:
    - Jobs checked every `poll_interval` seconds (and once at start)
    - Due jobs leave the pending set before any send starts, so an
      overlapping poll never dispatches the same job twice
    - Each due job is delivered in its own task
    - Jobs overdue by more than `stale_after` are dropped (0 disables)
    - Pending set saved on add, every `save_interval` seconds and at stop
    """

    def __init__(self, sender, store, clock=None, poll_interval=60, save_interval=300,
                 stale_after=86400, display_timezone=None):
        self.sender = sender
        self.store = store
        self.clock = clock or Clock()
        self.stale_after = stale_after
        self.display_timezone = display_timezone
        self.jobs = []
        self._in_flight = set()

        self._poll = PeriodicTask(
            'one-time-poll', poll_interval, self.check_pending_jobs, self.clock,
            run_immediately=True,
        )
        self._autosave = PeriodicTask(
            'one-time-save', save_interval, self._save_tick, self.clock
        )

    def create_job(self, recipients, message, fire_at):
        """
        Build a job with a generated id

        Raises:
            InvalidScheduleError: no recipients or empty message
        """
        recipients = tuple(parse_recipients(recipients))
        if not recipients:
            raise InvalidScheduleError("One-time job needs at least one recipient")
        if not message or not str(message).strip():
            raise InvalidScheduleError("One-time job message cannot be empty")

        suffix = ''.join(random.choices(_BASE36, k=9))
        job_id = f"onetime-{int(self.clock.time() * 1000)}-{suffix}"
        return OneTimeJob(id=job_id, recipients=recipients, message=message,
                          fire_at=float(fire_at))

    def add_one_time_job(self, job):
        """Append a job and persist the pending set right away"""
        self.jobs.append(job)
        logger.info(
            f"📅 One-time job {job.id} scheduled for "
            f"{format_time_display(job.fire_at, self.display_timezone)} "
            f"-> {len(job.recipients)} recipient(s)"
        )
        self.save_to_store()
        return job

    async def check_pending_jobs(self):
        """
        Dispatch every job whose fire time has passed

        Returns:
            list: the jobs dispatched by this call
        """
        now = self.clock.time()
        due, remaining = [], []
        for job in self.jobs:
            (due if job.fire_at <= now else remaining).append(job)
        self.jobs = remaining

        dispatched = []
        for job in due:
            overdue = now - job.fire_at
            if self.stale_after and overdue > self.stale_after:
                logger.warning(
                    f"🗑️ Dropping stale one-time job {job.id} "
                    f"(overdue by {int(overdue)}s)"
                )
                continue

            logger.info(f"⏰ Executing one-time job {job.id}")
            task = asyncio.get_running_loop().create_task(
                self._deliver(job), name=f"one-time:{job.id}"
            )
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            dispatched.append(job)

        return dispatched

    async def _deliver(self, job):
        try:
            result = await self.sender.deliver_batch(
                list(job.recipients), job.message, label=job.id
            )
            logger.info(
                f"✅ One-time job {job.id} done: "
                f"{result.success_count}/{result.total} delivered"
            )
        except Exception as e:
            logger.error(f"❌ One-time job {job.id} failed: {e}", exc_info=True)

    def load_from_store(self):
        """Replace the pending set with the persisted one"""
        self.jobs = list(self.store.load_one_time_jobs())
        logger.info(f"📂 Loaded {len(self.jobs)} pending one-time job(s)")
        return len(self.jobs)

    def save_to_store(self):
        try:
            self.store.save_one_time_jobs(list(self.jobs))
        except Exception as e:
            logger.error(f"❌ Failed to save one-time jobs: {e}", exc_info=True)
            return False
        return True

    async def _save_tick(self):
        self.save_to_store()

    async def start(self):
        self.load_from_store()
        self._poll.start()
        self._autosave.start()
        logger.info("✅ One-time scheduler started")

    async def stop(self):
        """Stop polling and persist what is still pending"""
        self._poll.stop()
        self._autosave.stop()
        self.save_to_store()
        logger.info("⏹️ One-time scheduler stopped")

    async def wait_for_in_flight(self, timeout=None):
        """
        Wait for running deliveries

        Returns:
            int: deliveries still running when the timeout expired
        """
        if not self._in_flight:
            return 0
        _, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
        if pending:
            logger.warning(f"⚠️ {len(pending)} one-time delivery(ies) still running")
        return len(pending)

    @property
    def in_flight(self):
        return set(self._in_flight)

    def get_pending_jobs(self):
        """Snapshot of pending jobs, soonest first"""
        return [
            {
                **job.to_dict(),
                'fire_at_display': format_time_display(job.fire_at, self.display_timezone),
            }
            for job in sorted(self.jobs, key=lambda j: j.fire_at)
        ]
