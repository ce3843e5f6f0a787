"""
File: main.py
Purpose: Main entry point for the dispatcher

Commands:
    python main.py run                          start the service until interrupted
    python main.py send --to A --to B "text"    one immediate batch
    python main.py list                         stored schedules and pending jobs
    python main.py import-schedules FILE        copy JSON schedules into the database
"""

import argparse
import sys
import asyncio
import logging
from logging.handlers import TimedRotatingFileHandler

from config.settings import (
    ADMIN_CHAT_ID,
    DATABASE_URL,
    LOG_FILE,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_RETENTION_DAYS,
    ONE_TIME_FILE,
    SCHEDULES_FILE,
    SQLITE_PATH,
    STORE_BACKEND,
    TIMEZONE,
    require_bot_token,
)
from config.timezone_config import format_time_display

logger = logging.getLogger(__name__)


def setup_logging():
    """Daily rotated log file plus stdout"""
    if sys.platform == 'win32':
        import io
        sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8')
        sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8')

    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        handlers=[
            TimedRotatingFileHandler(
                LOG_FILE, when='midnight', backupCount=LOG_RETENTION_DAYS, encoding='utf-8'
            ),
            logging.StreamHandler(sys.stdout)
        ]
    )
    # httpx logs every Bot API request at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)


def build_store(backend=STORE_BACKEND):
    from database import DatabaseManager, DatabaseStore, JsonFileStore

    if backend == 'database':
        return DatabaseStore(DatabaseManager(SQLITE_PATH, DATABASE_URL))
    if backend == 'json':
        return JsonFileStore(SCHEDULES_FILE, ONE_TIME_FILE, timezone=TIMEZONE)
    raise ValueError(f"Unknown STORE_BACKEND '{backend}' (use 'json' or 'database')")


def build_core(store):
    """Wire transport, alerts and scheduler core (call inside the event loop)"""
    from core.scheduler_core import SchedulerCore
    from features.alerts import AlertSystem
    from transport import TelegramTransport

    notifier = None
    if ADMIN_CHAT_ID:
        async def notifier(text):
            await transport.send(ADMIN_CHAT_ID, text)

    alerts = AlertSystem(notifier=notifier)
    transport = TelegramTransport(require_bot_token(), alerts=alerts)
    return SchedulerCore(transport, store, alerts=alerts)


async def run_service():
    core = build_core(build_store())
    await core.start()

    logger.info("=" * 60)
    logger.info("✅ DISPATCHER STARTED")
    logger.info(f"🌐 Timezone: {TIMEZONE}")
    logger.info(f"📅 Schedules: {len(core.recurring.jobs)} active")
    logger.info(f"⏰ One-time jobs: {len(core.one_time.jobs)} pending")
    stats = core.get_stats()
    logger.info(
        f"⚡ Rate limits: {stats['limit_per_minute']}/min, {stats['limit_per_hour']}/hour, "
        f"{stats['limit_per_recipient']}/min per recipient"
    )
    logger.info(f"👤 Admin alerts: {ADMIN_CHAT_ID or 'log only'}")
    logger.info("=" * 60)

    try:
        await asyncio.Event().wait()
    finally:
        await core.stop()


async def send_once(recipients, message):
    from utils.validators import is_valid_recipient

    for recipient in recipients:
        if not is_valid_recipient(recipient):
            logger.warning(f"⚠️ '{recipient}' is neither a chat id nor an @username")

    core = build_core(build_store())
    await core.transport.initialize()
    try:
        result = await core.send_now(recipients, message)
        if core.rate_limiter.queued:
            logger.warning(
                f"⚠️ {len(core.rate_limiter.queued)} message(s) rate limited and not sent"
            )
        return result
    finally:
        await core.transport.shutdown()


def list_stored():
    store = build_store()
    schedules = store.load_schedules()
    jobs = sorted(store.load_one_time_jobs(), key=lambda j: j.fire_at)

    print(f"📅 Schedules ({len(schedules)}):")
    for schedule in schedules:
        status = 'enabled' if schedule.enabled else 'disabled'
        print(
            f"  {schedule.id}: '{schedule.cron}' ({schedule.timezone or TIMEZONE}, {status}) "
            f"-> {', '.join(schedule.recipients)}"
        )

    print(f"⏰ One-time jobs ({len(jobs)}):")
    for job in jobs:
        print(
            f"  {job.id}: {format_time_display(job.fire_at, TIMEZONE)} "
            f"-> {', '.join(job.recipients)}"
        )


def import_schedules(path):
    from database import JsonFileStore
    from features.recurring_schedules import RecurringScheduler

    source = JsonFileStore(path, ONE_TIME_FILE, timezone=TIMEZONE)
    target = build_store('database')
    checker = RecurringScheduler(sender=None)

    imported = 0
    for definition in source.load_schedules():
        problem = checker.validate(definition)
        if problem:
            logger.error(f"❌ Skipping schedule {definition.id or '<no id>'}: {problem}")
            continue
        target.save_schedule(definition)
        imported += 1

    logger.info(f"✅ Imported {imported} schedule(s) from {path}")
    return imported


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Scheduled Telegram message dispatcher')
    sub = parser.add_subparsers(dest='command')

    sub.add_parser('run', help='Start the dispatcher service')

    send = sub.add_parser('send', help='Send a message immediately')
    send.add_argument('--to', action='append', required=True, dest='recipients',
                      help='Recipient chat id or @channel (repeatable)')
    send.add_argument('message')

    sub.add_parser('list', help='Show stored schedules and pending one-time jobs')

    imp = sub.add_parser('import-schedules', help='Copy a schedules.json into the database')
    imp.add_argument('path')

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = 'run'
    return args


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)
    setup_logging()

    if args.command == 'run':
        logger.info("=" * 60)
        logger.info("🚀 SCHEDULED MESSAGE DISPATCHER")
        logger.info("=" * 60)
        try:
            asyncio.run(run_service())
        except KeyboardInterrupt:
            logger.info("👋 Stopped by user")
        return 0

    if args.command == 'send':
        result = asyncio.run(send_once(args.recipients, args.message))
        logger.info(f"📊 Result: {result.as_dict()}")
        return 0 if result.fail_count == 0 else 1

    if args.command == 'list':
        list_stored()
        return 0

    if args.command == 'import-schedules':
        import_schedules(args.path)
        return 0

    return 2


if __name__ == "__main__":
    sys.exit(main())
