import asyncio

from conftest import FakeClock, FakeTransport, START

from core.connection_supervisor import ConnectionSupervisor
from core.models import ConnectionState, FaultKind, TransportFault
from features.alerts import AlertSystem


def test_backoff_sequence() -> None:
    supervisor = ConnectionSupervisor(
        FakeTransport(), clock=FakeClock(), base_delay=5.0, multiplier=1.5, max_delay=60.0
    )

    delays_ms = [int(supervisor.compute_delay(n) * 1000) for n in range(1, 7)]

    assert delays_ms == [5000, 7500, 11250, 16875, 25312, 37968]
    assert supervisor.compute_delay(7) == 56.953125
    assert supervisor.compute_delay(8) == 60.0
    assert supervisor.compute_delay(20) == 60.0


def test_transient_disconnect_restarts_after_backoff() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        supervisor = ConnectionSupervisor(transport, clock=clock)
        supervisor.attach()
        transport.state = ConnectionState.DISCONNECTED

        event = asyncio.create_task(
            transport.emit('disconnected', TransportFault('Target closed'))
        )
        await clock.advance(0)
        during = (supervisor.state, supervisor.is_restarting, supervisor.attempts)

        # a second fault while restarting is ignored
        await supervisor.handle_error(TransportFault('ECONNRESET'))
        skipped = await supervisor.restart('manual')

        await clock.advance(5)
        await event
        return during, skipped, supervisor.get_status()

    during, skipped, status = asyncio.run(scenario())

    assert during == (ConnectionState.RESTARTING, True, 1)
    assert skipped is False
    # the connected event resets the attempt counter
    assert status == {
        'state': 'connected',
        'is_restarting': False,
        'attempts': 0,
        'max_attempts': 10,
        'last_restart_time': START + 5,
        'gave_up': False,
        'logged_out': False,
    }
    assert transport.shutdown_calls == 1
    assert transport.initialize_calls == 1
    assert clock.sleeps == [5.0]


def test_logout_never_restarts_and_raises_alert() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        alerts = AlertSystem(clock)
        supervisor = ConnectionSupervisor(transport, clock=clock, alerts=alerts)
        supervisor.attach()
        await transport.emit('disconnected', TransportFault('token revoked', FaultKind.LOGOUT))
        await transport.emit('error', TransportFault('LOGOUT (connection closed)'))
        return supervisor, alerts

    supervisor, alerts = asyncio.run(scenario())

    assert supervisor.state is ConnectionState.DISCONNECTED
    assert supervisor.attempts == 0
    assert transport.shutdown_calls == 0
    assert [a['type'] for a in alerts.get_recent_alerts()] == ['session_expired']


def test_unclassified_fault_is_only_logged() -> None:
    transport = FakeTransport()

    async def scenario():
        supervisor = ConnectionSupervisor(transport, clock=FakeClock())
        supervisor.attach()
        await transport.emit('error', TransportFault('message is too long'))
        return supervisor.attempts

    assert asyncio.run(scenario()) == 0
    assert transport.shutdown_calls == 0


def test_gives_up_after_max_attempts_until_connected() -> None:
    clock = FakeClock()
    transport = FakeTransport()
    transport.initialize_error = RuntimeError('still down')

    async def scenario():
        alerts = AlertSystem(clock)
        supervisor = ConnectionSupervisor(
            transport, clock=clock, max_attempts=2, base_delay=1.0, alerts=alerts
        )
        results = []
        for _ in range(4):
            task = asyncio.create_task(supervisor.restart('test'))
            await clock.advance(10)
            results.append(await task)
        exhausted = (supervisor.attempts, supervisor.gave_up, supervisor.state)

        await supervisor.handle_connected()
        return results, exhausted, supervisor, alerts

    results, exhausted, supervisor, alerts = asyncio.run(scenario())

    assert results == [False, False, False, False]
    assert exhausted == (2, True, ConnectionState.DISCONNECTED)
    assert transport.initialize_calls == 2
    assert [a['type'] for a in alerts.get_recent_alerts()] == ['restart_exhausted']
    assert (supervisor.attempts, supervisor.gave_up) == (0, False)
    assert supervisor.state is ConnectionState.CONNECTED


def test_keepalive_reconnects_when_transport_is_down() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        supervisor = ConnectionSupervisor(transport, clock=clock, keepalive_interval=300)
        supervisor.attach()
        supervisor.start_keepalive()
        await clock.advance(299)
        idle_restarts = transport.initialize_calls

        transport.state = ConnectionState.DISCONNECTED
        await clock.advance(1)
        restarting = (supervisor.is_restarting, supervisor.attempts)
        await clock.advance(5)
        supervisor.stop()
        return idle_restarts, restarting, supervisor.state

    assert asyncio.run(scenario()) == (0, (True, 1), ConnectionState.CONNECTED)
    assert transport.initialize_calls == 1
    assert transport.state is ConnectionState.CONNECTED


def test_reset_clears_terminal_state() -> None:
    supervisor = ConnectionSupervisor(FakeTransport(), clock=FakeClock(), max_attempts=1)
    supervisor.attempts = 1
    supervisor.gave_up = True

    supervisor.reset()

    assert (supervisor.attempts, supervisor.gave_up) == (0, False)


def test_keepalive_leaves_a_logged_out_transport_alone() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        supervisor = ConnectionSupervisor(transport, clock=clock, keepalive_interval=300)
        supervisor.attach()
        supervisor.start_keepalive()
        transport.state = ConnectionState.DISCONNECTED
        await transport.emit('disconnected', TransportFault('token revoked', FaultKind.LOGOUT))

        await clock.advance(310)
        latched = (supervisor.logged_out, supervisor.attempts, transport.initialize_calls)

        # an operator reset lets the keep-alive reconnect again
        supervisor.reset()
        await clock.advance(300)
        await clock.advance(5)
        supervisor.stop()
        return latched, supervisor

    latched, supervisor = asyncio.run(scenario())

    assert latched == (True, 0, 0)
    assert supervisor.logged_out is False
    assert transport.initialize_calls == 1
    assert supervisor.state is ConnectionState.CONNECTED


def test_connected_event_clears_logout() -> None:
    transport = FakeTransport()

    async def scenario():
        supervisor = ConnectionSupervisor(transport, clock=FakeClock())
        supervisor.attach()
        await transport.emit('disconnected', TransportFault('token revoked', FaultKind.LOGOUT))
        logged_out = supervisor.get_status()['logged_out']
        await transport.emit('connected')
        return logged_out, supervisor.get_status()['logged_out']

    assert asyncio.run(scenario()) == (True, False)
