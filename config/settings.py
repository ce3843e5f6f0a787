"""
File: config/settings.py
Purpose: Centralized configuration and constants
Dependencies: os, dotenv
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name, default):
    return int(os.environ.get(name, default))


def _env_float(name, default):
    return float(os.environ.get(name, default))


# =============================================================================
# TELEGRAM TRANSPORT CONFIGURATION
# =============================================================================
BOT_TOKEN = os.environ.get('BOT_TOKEN')
ADMIN_CHAT_ID = os.environ.get('ADMIN_CHAT_ID') or None


def require_bot_token():
    """
    Return the bot token or fail loudly

    Checked at entry time instead of import time so the library and the
    test suite import without a .env file.
    """
    if not BOT_TOKEN:
        raise ValueError("❌ BOT_TOKEN must be set in environment variables!")
    return BOT_TOKEN


# =============================================================================
# TIMEZONE
# =============================================================================
TIMEZONE = os.environ.get('TZ', 'America/New_York')

# =============================================================================
# RATE LIMITING CONFIGURATION
# =============================================================================
RATE_LIMIT_PER_MINUTE = _env_int('RATE_LIMIT_PER_MINUTE', 20)  # global msg/min
RATE_LIMIT_PER_HOUR = _env_int('RATE_LIMIT_PER_HOUR', 500)  # global msg/hour
RATE_LIMIT_PER_RECIPIENT = _env_int('RATE_LIMIT_PER_RECIPIENT', 10)  # msg/min per chat

QUEUE_DRAIN_INTERVAL = _env_float('QUEUE_DRAIN_INTERVAL', 30)  # seconds
QUEUE_STALE_SECONDS = _env_float('QUEUE_STALE_SECONDS', 3600)  # drop queued after 1h

# =============================================================================
# DELIVERY CONFIGURATION
# =============================================================================
INTER_RECIPIENT_DELAY = _env_float('INTER_RECIPIENT_DELAY', 3)  # seconds between recipients

# =============================================================================
# ONE-TIME SCHEDULER CONFIGURATION
# =============================================================================
ONE_TIME_POLL_INTERVAL = _env_float('ONE_TIME_POLL_INTERVAL', 60)
ONE_TIME_SAVE_INTERVAL = _env_float('ONE_TIME_SAVE_INTERVAL', 300)
ONE_TIME_STALE_SECONDS = _env_float('ONE_TIME_STALE_SECONDS', 86400)  # 0 = never drop

# =============================================================================
# RECONNECTION CONFIGURATION
# =============================================================================
MAX_RECONNECT_RETRIES = _env_int('MAX_RECONNECT_RETRIES', 10)
RECONNECT_INITIAL_DELAY = _env_float('RECONNECT_INITIAL_DELAY', 5.0)  # seconds
RECONNECT_MAX_DELAY = _env_float('RECONNECT_MAX_DELAY', 60.0)  # seconds
RECONNECT_BACKOFF = _env_float('RECONNECT_BACKOFF', 1.5)
KEEPALIVE_INTERVAL = _env_float('KEEPALIVE_INTERVAL', 300)  # 5 minutes

# =============================================================================
# ALERT CONFIGURATION
# =============================================================================
ALERT_COOLDOWN_SECONDS = _env_float('ALERT_COOLDOWN_SECONDS', 300)
ALERT_HISTORY_LIMIT = 100

# =============================================================================
# STORAGE CONFIGURATION
# =============================================================================
STORE_BACKEND = os.environ.get('STORE_BACKEND', 'json')  # 'json' or 'database'
SCHEDULES_FILE = os.environ.get('SCHEDULES_FILE', 'schedules.json')
ONE_TIME_FILE = os.environ.get('ONE_TIME_FILE', 'one-time-messages.json')
DATABASE_URL = os.environ.get('DATABASE_URL')
SQLITE_PATH = os.environ.get('SQLITE_PATH', 'dispatch.db')  # Fallback for local runs

# =============================================================================
# SHUTDOWN
# =============================================================================
SHUTDOWN_GRACE_SECONDS = _env_float('SHUTDOWN_GRACE_SECONDS', 30)

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
LOG_FILE = os.environ.get('LOG_FILE', 'bot.log')
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
LOG_RETENTION_DAYS = _env_int('LOG_RETENTION_DAYS', 14)
