"""
File: transport/telegram_transport.py
Purpose: Telegram Bot API transport for the dispatcher (python-telegram-bot)
"""

import asyncio
import logging

from telegram import Bot
from telegram.error import (
    BadRequest,
    Forbidden,
    InvalidToken,
    NetworkError,
    RetryAfter,
    TelegramError,
    TimedOut,
)

from core.exceptions import SendFailedError
from core.models import ConnectionState, FaultKind, TransportFault

logger = logging.getLogger(__name__)

EVENTS = ('connected', 'disconnected', 'error')


class TelegramTransport:
    """
    Transport over the Telegram Bot API

    Features:
    - Recipients are chat ids ("-1001234567890") or "@channel" usernames
    - Recipient-level failures (flood wait, bad chat, bot blocked) raise
      SendFailedError without touching the connection state
    - Network failures mark the transport disconnected and emit a
      TRANSIENT fault; a rejected token emits a LOGOUT fault
    - A token rejected at startup also raises an authentication alert
    - Event callbacks run as their own tasks
    """

    def __init__(self, token, bot=None, alerts=None):
        self.bot = bot or Bot(token)
        self.alerts = alerts
        self.state = ConnectionState.DISCONNECTED
        self.bot_username = None
        self._listeners = {event: [] for event in EVENTS}
        self._tasks = set()

    def on(self, event, callback):
        if event not in self._listeners:
            raise ValueError(f"Unknown transport event: {event}")
        self._listeners[event].append(callback)

    def _emit(self, event, *args):
        loop = asyncio.get_running_loop()
        for callback in self._listeners[event]:
            task = loop.create_task(callback(*args))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def _lost(self, event, reason, kind):
        self.state = ConnectionState.DISCONNECTED
        self._emit(event, TransportFault(reason=reason, kind=kind))

    def connection_state(self):
        return self.state

    async def initialize(self):
        """
        Open the HTTP session and verify the token

        Raises:
            TelegramError: after emitting the matching fault event
        """
        try:
            await self.bot.initialize()
            me = await self.bot.get_me()
        except InvalidToken as e:
            logger.error(f"🔑 Bot token rejected: {e}")
            if self.alerts is not None:
                self.alerts.trigger_auth_failure(str(e))
            self._lost('disconnected', f"invalid token: {e}", FaultKind.LOGOUT)
            raise
        except NetworkError as e:
            logger.error(f"🌐 Telegram unreachable: {e}")
            self._lost('error', f"network error: {e}", FaultKind.TRANSIENT)
            raise

        self.bot_username = me.username
        self.state = ConnectionState.CONNECTED
        logger.info(f"✅ Connected to Telegram as @{self.bot_username}")
        self._emit('connected')

    async def shutdown(self):
        try:
            await self.bot.shutdown()
        finally:
            self.state = ConnectionState.DISCONNECTED
            logger.info("🔌 Telegram transport closed")

    async def send(self, recipient, text):
        """
        Send a text message

        Raises:
            SendFailedError: on any delivery failure
        """
        try:
            await self.bot.send_message(chat_id=recipient, text=text)
        except RetryAfter as e:
            raise SendFailedError(recipient, f"flood control: {e}") from e
        except InvalidToken as e:
            self._lost('disconnected', f"invalid token: {e}", FaultKind.LOGOUT)
            raise SendFailedError(recipient, f"token rejected: {e}") from e
        except Forbidden as e:
            raise SendFailedError(recipient, f"forbidden: {e}") from e
        except BadRequest as e:
            # BadRequest subclasses NetworkError but is a per-chat problem
            raise SendFailedError(recipient, f"bad request: {e}") from e
        except (TimedOut, NetworkError) as e:
            logger.warning(f"🌐 Network failure while sending to {recipient}: {e}")
            self._lost('disconnected', f"network error: {e}", FaultKind.TRANSIENT)
            raise SendFailedError(recipient, f"network error: {e}") from e
        except TelegramError as e:
            raise SendFailedError(recipient, str(e)) from e
