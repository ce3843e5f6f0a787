"""
File: core/connection_supervisor.py
Purpose: Restart the transport session after transient failures, with backoff
"""

import logging

from core.clock import Clock
from core.error_classifier import resolve_kind
from core.models import ConnectionState, FaultKind, TransportFault
from core.periodic import PeriodicTask

logger = logging.getLogger(__name__)


class ConnectionSupervisor:
    """
    Connection resilience state machine

    CONNECTED -> DISCONNECTED -> RESTARTING -> CONNECTED
                                           \\-> give up after max_attempts

    - Transient faults trigger restart() with exponential backoff
    - Logout faults never restart, not even from the keep-alive; they
      need re-authentication (a connected signal or reset() clears it)
    - A connected signal resets the attempt counter
    - Once max_attempts is reached the supervisor stops trying until a
      connected signal or an explicit reset()
    """

    def __init__(self, transport, clock=None, max_attempts=10, base_delay=5.0,
                 max_delay=60.0, multiplier=1.5, keepalive_interval=300, alerts=None):
        self.transport = transport
        self.clock = clock or Clock()
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.alerts = alerts

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self.is_restarting = False
        self.gave_up = False
        self.last_restart_time = None
        self.logged_out = False

        self._keepalive = PeriodicTask(
            'keep-alive', keepalive_interval, self.check_connection, self.clock
        )

    def attach(self):
        """Subscribe to transport events"""
        self.transport.on('connected', self.handle_connected)
        self.transport.on('disconnected', self.handle_disconnected)
        self.transport.on('error', self.handle_error)

    def start_keepalive(self):
        self._keepalive.start()

    def stop(self):
        """Stop the keep-alive timer; an in-flight restart runs to completion"""
        self._keepalive.stop()

    def compute_delay(self, attempt):
        """Backoff delay in seconds before restart number `attempt` (1-based)"""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    # ------------------------------------------------------------------
    # transport events
    # ------------------------------------------------------------------

    async def handle_connected(self, *_):
        if self.attempts or self.gave_up:
            logger.info(f"✅ Transport connected - reset {self.attempts} restart attempt(s)")
        else:
            logger.info("✅ Transport connected and ready")
        self.state = ConnectionState.CONNECTED
        self.attempts = 0
        self.gave_up = False
        self.logged_out = False

    async def handle_disconnected(self, fault: TransportFault):
        logger.warning(f"⚠️ Transport disconnected: {fault.reason}")
        if not self.is_restarting:
            self.state = ConnectionState.DISCONNECTED
        await self._handle_fault(fault, 'disconnection')

    async def handle_error(self, fault: TransportFault):
        logger.error(f"❌ Transport error: {fault.reason}")
        await self._handle_fault(fault, 'error')

    async def _handle_fault(self, fault, source):
        if self.is_restarting:
            logger.debug(f"Already restarting, ignoring {source}")
            return

        kind = resolve_kind(fault)

        if kind is FaultKind.LOGOUT:
            self.state = ConnectionState.DISCONNECTED
            self.logged_out = True
            logger.warning("🔑 Logged out - re-authentication required, not restarting")
            if self.alerts is not None:
                self.alerts.trigger_session_expired(fault.reason)
            return

        if kind is FaultKind.TRANSIENT:
            await self.restart(f"{source}: {fault.reason}")
            return

        logger.info(f"ℹ️ Unclassified transport {source}, not restarting: {fault.reason}")

    async def check_connection(self):
        """Keep-alive: restart when the transport reports it is down"""
        if self.is_restarting or self.gave_up or self.logged_out:
            return
        if self.transport.connection_state() is ConnectionState.CONNECTED:
            return
        logger.warning("⚠️ Keep-alive: transport not connected, reconnecting")
        await self.restart('keep-alive')

    # ------------------------------------------------------------------
    # restart
    # ------------------------------------------------------------------

    async def restart(self, reason='unknown'):
        """
        Tear down and reinitialize the transport after a backoff delay

        Returns:
            bool: True if the transport came back up, False if skipped or failed
        """
        if self.is_restarting:
            return False

        if self.attempts >= self.max_attempts:
            if not self.gave_up:
                self.gave_up = True
                logger.critical(
                    f"🚨 Max restart attempts reached ({self.attempts}/{self.max_attempts}) "
                    f"- giving up until reconnected manually"
                )
                if self.alerts is not None:
                    self.alerts.trigger_restart_exhausted(self.attempts, reason)
            return False

        self.is_restarting = True
        self.state = ConnectionState.RESTARTING
        self.attempts += 1
        delay = self.compute_delay(self.attempts)

        logger.warning(
            f"🔄 Restarting transport ({reason}) attempt {self.attempts}/{self.max_attempts} "
            f"in {delay:.1f}s"
        )

        try:
            try:
                await self.transport.shutdown()
            except Exception as e:
                logger.debug(f"Error closing transport during restart: {e}")

            await self.clock.sleep(delay)
            await self.transport.initialize()

            self.last_restart_time = self.clock.time()
            logger.info(f"✅ Transport restart completed (attempt {self.attempts})")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to restart transport (attempt {self.attempts}): {e}")
            return False
        finally:
            self.is_restarting = False
            if self.transport.connection_state() is ConnectionState.CONNECTED:
                self.state = ConnectionState.CONNECTED
            else:
                self.state = ConnectionState.DISCONNECTED

    def reset(self):
        """Operator override after a terminal failure"""
        logger.info(f"🔄 Restart counter reset (was {self.attempts})")
        self.attempts = 0
        self.gave_up = False
        self.logged_out = False

    def get_status(self):
        """Get current connection supervisor status"""
        return {
            'state': self.state.value,
            'is_restarting': self.is_restarting,
            'attempts': self.attempts,
            'max_attempts': self.max_attempts,
            'last_restart_time': self.last_restart_time,
            'gave_up': self.gave_up,
            'logged_out': self.logged_out,
        }
