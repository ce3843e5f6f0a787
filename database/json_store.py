"""
File: database/json_store.py
Purpose: Schedule and one-time job persistence in plain JSON files

File formats:
    schedules.json           [{"id", "recipient" | "recipients", "message", "cron",
                               "timezone"?, "enabled"?}, ...]
    one-time-messages.json   [{"id", "recipients", "message", "sendAt"}, ...]

sendAt is written as epoch milliseconds. On read it may also be epoch
seconds, an ISO string or a relative form such as "30m" or "tomorrow 9am".
"""

import json
import logging
import os
import tempfile

from core.exceptions import StoreError
from core.models import OneTimeJob, ScheduleDefinition
from utils.time_parser import parse_fire_at
from utils.validators import parse_recipients

logger = logging.getLogger(__name__)


class JsonFileStore:
    """ScheduleStore on two JSON files; a missing file reads as empty"""

    def __init__(self, schedules_path='schedules.json', jobs_path='one-time-messages.json',
                 timezone=None):
        self.schedules_path = schedules_path
        self.jobs_path = jobs_path
        self.timezone = timezone

    def _read(self, path):
        if not os.path.exists(path):
            return []
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, list):
            raise StoreError(f"{path} must contain a JSON list")
        return data

    def _write(self, path, records):
        directory = os.path.dirname(os.path.abspath(path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.tmp-', suffix='.json')
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e

        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e
        finally:
            # gone after a successful replace
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

    # =========================================================================
    # SCHEDULES
    # =========================================================================

    def load_schedules(self):
        schedules = []
        for index, raw in enumerate(self._read(self.schedules_path)):
            if not isinstance(raw, dict):
                logger.error(f"❌ Skipping schedule #{index} in {self.schedules_path}: not an object")
                continue
            schedules.append(ScheduleDefinition.from_dict(raw))
        logger.info(f"📂 Loaded {len(schedules)} schedule(s) from {self.schedules_path}")
        return schedules

    def save_schedule(self, definition):
        """Insert or replace one schedule by id"""
        records = [
            raw for raw in self._read(self.schedules_path)
            if not (isinstance(raw, dict) and str(raw.get('id')) == definition.id)
        ]
        records.append(definition.to_dict())
        self._write(self.schedules_path, records)
        logger.info(f"💾 Schedule {definition.id} saved to {self.schedules_path}")

    def delete_schedule(self, schedule_id):
        records = self._read(self.schedules_path)
        kept = [
            raw for raw in records
            if not (isinstance(raw, dict) and str(raw.get('id')) == schedule_id)
        ]
        if len(kept) == len(records):
            return False
        self._write(self.schedules_path, kept)
        return True

    # =========================================================================
    # ONE-TIME JOBS
    # =========================================================================

    def load_one_time_jobs(self):
        jobs = []
        for index, raw in enumerate(self._read(self.jobs_path)):
            try:
                recipients = raw.get('recipients')
                if recipients is None:
                    recipients = raw.get('recipient')
                send_at = raw.get('sendAt', raw.get('fire_at'))
                jobs.append(OneTimeJob(
                    id=str(raw['id']),
                    recipients=tuple(parse_recipients(recipients)),
                    message=raw['message'],
                    fire_at=parse_fire_at(send_at, tz_name=self.timezone),
                ))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.error(f"❌ Skipping one-time job #{index} in {self.jobs_path}: {e}")
        return jobs

    def save_one_time_jobs(self, jobs):
        records = [
            {
                'id': job.id,
                'recipients': list(job.recipients),
                'message': job.message,
                'sendAt': int(round(job.fire_at * 1000)),
            }
            for job in jobs
        ]
        self._write(self.jobs_path, records)
        logger.debug(f"💾 Saved {len(records)} one-time job(s) to {self.jobs_path}")
