"""
File: database/store.py
Purpose: Schedule and one-time job persistence on PostgreSQL/SQLite
"""

import json
import logging
import sqlite3

import psycopg2

from core.exceptions import StoreError
from core.models import OneTimeJob, ScheduleDefinition
from utils.validators import parse_recipients

logger = logging.getLogger(__name__)

_DB_ERRORS = (sqlite3.Error, psycopg2.Error)


class DatabaseStore:
    """
    ScheduleStore backed by DatabaseManager

    Features:
    - Same queries for both engines (placeholder switched per engine)
    - One-time jobs rewritten in a single transaction on save
    - Schedules upserted by id
    - Rows that fail to parse are skipped and logged
    """

    def __init__(self, db_manager, init=True):
        self.db = db_manager
        if init:
            self.db.init_database()

    def _ph(self):
        return self.db.placeholder()

    def load_schedules(self):
        try:
            with self.db.get_db() as conn:
                c = conn.cursor()
                c.execute('SELECT id, recipients, message, cron, timezone, enabled '
                          'FROM schedules ORDER BY id')
                rows = [dict(row) for row in c.fetchall()]
        except _DB_ERRORS as e:
            raise StoreError(f"Failed to load schedules: {e}") from e

        schedules = []
        for row in rows:
            try:
                row['recipients'] = json.loads(row['recipients'])
                schedules.append(ScheduleDefinition.from_dict(row))
            except (ValueError, TypeError) as e:
                logger.error(f"❌ Skipping malformed schedule row {row.get('id')}: {e}")
        return schedules

    def save_schedule(self, definition):
        """Insert or update one schedule"""
        ph = self._ph()
        params = (
            definition.id,
            json.dumps(list(definition.recipients)),
            definition.message,
            definition.cron,
            definition.timezone,
            1 if definition.enabled else 0,
        )
        try:
            with self.db.get_db() as conn:
                c = conn.cursor()
                c.execute(f'''
                    INSERT INTO schedules (id, recipients, message, cron, timezone, enabled)
                    VALUES ({ph}, {ph}, {ph}, {ph}, {ph}, {ph})
                    ON CONFLICT (id) DO UPDATE SET
                        recipients = EXCLUDED.recipients,
                        message = EXCLUDED.message,
                        cron = EXCLUDED.cron,
                        timezone = EXCLUDED.timezone,
                        enabled = EXCLUDED.enabled,
                        updated_at = CURRENT_TIMESTAMP
                ''', params)
                conn.commit()
        except _DB_ERRORS as e:
            raise StoreError(f"Failed to save schedule {definition.id}: {e}") from e
        logger.info(f"💾 Schedule {definition.id} saved")

    def delete_schedule(self, schedule_id):
        ph = self._ph()
        try:
            with self.db.get_db() as conn:
                c = conn.cursor()
                c.execute(f'DELETE FROM schedules WHERE id = {ph}', (schedule_id,))
                deleted = c.rowcount
                conn.commit()
        except _DB_ERRORS as e:
            raise StoreError(f"Failed to delete schedule {schedule_id}: {e}") from e
        return deleted > 0

    def load_one_time_jobs(self):
        try:
            with self.db.get_db() as conn:
                c = conn.cursor()
                c.execute('SELECT id, recipients, message, fire_at '
                          'FROM one_time_jobs ORDER BY fire_at')
                rows = [dict(row) for row in c.fetchall()]
        except _DB_ERRORS as e:
            raise StoreError(f"Failed to load one-time jobs: {e}") from e

        jobs = []
        for row in rows:
            try:
                jobs.append(OneTimeJob(
                    id=row['id'],
                    recipients=tuple(parse_recipients(json.loads(row['recipients']))),
                    message=row['message'],
                    fire_at=float(row['fire_at']),
                ))
            except (ValueError, TypeError) as e:
                logger.error(f"❌ Skipping malformed one-time job row {row.get('id')}: {e}")
        return jobs

    def save_one_time_jobs(self, jobs):
        """Replace the stored pending set with `jobs`"""
        ph = self._ph()
        try:
            with self.db.get_db() as conn:
                c = conn.cursor()
                c.execute('DELETE FROM one_time_jobs')
                for job in jobs:
                    c.execute(
                        f'INSERT INTO one_time_jobs (id, recipients, message, fire_at) '
                        f'VALUES ({ph}, {ph}, {ph}, {ph})',
                        (job.id, json.dumps(list(job.recipients)), job.message, job.fire_at),
                    )
                conn.commit()
        except _DB_ERRORS as e:
            raise StoreError(f"Failed to save one-time jobs: {e}") from e
        logger.debug(f"💾 Saved {len(jobs)} one-time job(s)")
