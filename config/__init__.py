from .settings import *
from .timezone_config import *

__all__ = [
    'BOT_TOKEN', 'ADMIN_CHAT_ID', 'TIMEZONE', 'require_bot_token',
    'RATE_LIMIT_PER_MINUTE', 'RATE_LIMIT_PER_HOUR', 'RATE_LIMIT_PER_RECIPIENT',
    'QUEUE_DRAIN_INTERVAL', 'QUEUE_STALE_SECONDS', 'INTER_RECIPIENT_DELAY',
    'UTC', 'get_timezone', 'is_valid_timezone', 'from_timestamp',
    'localize', 'format_time_display'
]
