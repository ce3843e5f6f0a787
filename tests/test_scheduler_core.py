import asyncio

import pytest

from conftest import FakeClock, FakeTransport, MemoryStore, START

from core.exceptions import StoreError
from core.models import ConnectionState, ScheduleDefinition
from core.scheduler_core import SchedulerCore


def make_core(clock, transport=None, store=None, **options):
    settings = {'inter_recipient_delay': 0, 'timezone': 'UTC'}
    settings.update(options)
    return SchedulerCore(
        transport or FakeTransport(),
        store if store is not None else MemoryStore(),
        clock=clock,
        **settings,
    )


def test_start_loads_schedules_and_stop_shuts_down() -> None:
    clock = FakeClock()
    transport = FakeTransport()
    transport.state = ConnectionState.DISCONNECTED
    store = MemoryStore(schedules=[
        ScheduleDefinition('daily', ('A',), 'hello', '0 9 * * *'),
        ScheduleDefinition('paused', ('A',), 'hello', '0 9 * * *', enabled=False),
    ])

    async def scenario():
        core = make_core(clock, transport, store)
        await core.start()
        await clock.advance(0)
        started = core.get_status()
        await core.stop()
        return started, core.is_running

    started, running_after_stop = asyncio.run(scenario())

    assert started['running'] is True
    assert started['active_schedules'] == 1
    assert started['connection']['state'] == 'connected'
    assert transport.initialize_calls == 1
    assert transport.shutdown_calls == 1
    assert running_after_stop is False
    assert set(transport.listeners) == {'connected', 'disconnected', 'error'}


def test_schedule_operations_persist_to_the_store() -> None:
    clock = FakeClock()
    store = MemoryStore()

    async def scenario():
        core = make_core(clock, store=store)
        added = core.add_schedule({
            'id': 'news', 'recipients': 'A,B', 'message': 'hi', 'cron': '*/15 * * * *'
        })
        rejected = core.add_schedule({'id': 'broken', 'recipient': 'A', 'message': 'hi',
                                      'cron': 'every day'})
        listed = [s['id'] for s in core.get_schedules()]
        removed = core.remove_schedule('news')
        return added, rejected, listed, removed

    added, rejected, listed, removed = asyncio.run(scenario())

    assert (added, rejected, removed) == (True, False, True)
    assert listed == ['news']
    assert store.schedules == {}


def test_one_time_job_accepts_relative_fire_times() -> None:
    clock = FakeClock()
    store = MemoryStore()

    async def scenario():
        core = make_core(clock, store=store)
        job = core.add_one_time_job('A, B', 'reminder', '30m')
        return job, core.get_pending_jobs()

    job, pending = asyncio.run(scenario())

    assert job.fire_at == START + 1800
    assert job.recipients == ('A', 'B')
    assert [p['id'] for p in pending] == [job.id]
    assert store.jobs == [job]


def test_send_now_and_queue_drain() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        core = make_core(clock, transport, per_minute=1, queue_drain_interval=30)
        await core.start()
        result = await core.send_now(['A', 'B'], 'hello')
        queued = core.get_stats()['queue_length']

        # drains at +30 (still denied) and +60 (window slid past A's send)
        await clock.advance(61)
        stats = core.get_stats()
        await core.stop()
        return result, queued, stats

    result, queued, stats = asyncio.run(scenario())

    assert result.as_dict() == {'successCount': 1, 'failCount': 1, 'total': 2, 'queued': 1}
    assert queued == 1
    assert stats['queue_length'] == 0
    assert transport.sent == [('A', 'hello'), ('B', 'hello')]


def test_admission_operations_delegate_to_the_limiter() -> None:
    clock = FakeClock()
    sent = []

    async def action():
        sent.append('X')

    async def scenario():
        core = make_core(clock, per_recipient=1)
        core.record_sent('X')
        decision = core.can_send('X')
        outcome = await core.queue_message('Y', 'hello', action)
        default_outcome = await core.queue_message('X', 'hello')
        return decision, outcome, default_outcome, core.get_stats()

    decision, outcome, default_outcome, stats = asyncio.run(scenario())

    assert decision.reason == 'Per-recipient limit exceeded'
    assert outcome.sent
    assert sent == ['X']
    assert default_outcome.queued
    assert stats['queue_length'] == 1


def test_manual_restart_goes_through_the_supervisor() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        core = make_core(clock, transport, reconnect_initial_delay=2.0)
        core.supervisor.attach()
        task = asyncio.create_task(core.restart())
        await clock.advance(0)
        attempts_during = core.get_status()['connection']['attempts']
        await clock.advance(2)
        return await task, attempts_during, core.get_status()['connection']

    restarted, attempts_during, connection = asyncio.run(scenario())

    assert restarted is True
    assert attempts_during == 1
    assert transport.shutdown_calls == 1
    assert connection['state'] == 'connected'
    assert connection['last_restart_time'] == START + 2


class FailingStore(MemoryStore):
    def save_schedule(self, definition) -> None:
        raise StoreError('disk full')


class HeldTransport(FakeTransport):
    """send() waits until the test releases it"""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def send(self, recipient: str, text: str) -> None:
        await self.release.wait()
        await super().send(recipient, text)


def test_failed_save_installs_no_timer() -> None:
    clock = FakeClock()

    async def scenario():
        core = make_core(clock, store=FailingStore())
        with pytest.raises(StoreError):
            core.add_schedule(ScheduleDefinition('news', ('A',), 'hi', '* * * * *'))
        await clock.advance(120)
        return core.get_schedules(), core.transport.sent

    assert asyncio.run(scenario()) == ([], [])


def test_disabled_schedule_is_persisted_without_a_timer() -> None:
    clock = FakeClock()
    store = MemoryStore()

    async def scenario():
        core = make_core(clock, store=store)
        core.add_schedule(ScheduleDefinition('news', ('A',), 'hi', '* * * * *'))
        core.add_schedule(ScheduleDefinition('news', ('A',), 'hi', '* * * * *', enabled=False))
        await clock.advance(120)
        return core.get_schedules(), core.transport.sent

    assert asyncio.run(scenario()) == ([], [])
    assert store.schedules['news'].enabled is False


def test_stop_waits_for_running_batches() -> None:
    clock = FakeClock()
    transport = HeldTransport()
    store = MemoryStore(schedules=[ScheduleDefinition('tick', ('A',), 'hi', '* * * * *')])

    async def scenario():
        core = make_core(clock, transport, store)
        await core.start()
        await clock.advance(40)
        stopping = asyncio.create_task(core.stop())
        await clock.settle()
        waited = not stopping.done()

        transport.release.set()
        await stopping
        return waited

    assert asyncio.run(scenario()) is True
    assert transport.sent == [('A', 'hi')]
    assert transport.shutdown_calls == 1


def test_stop_gives_up_on_batches_after_the_grace_period() -> None:
    clock = FakeClock()
    transport = HeldTransport()
    store = MemoryStore(schedules=[ScheduleDefinition('tick', ('A',), 'hi', '* * * * *')])

    async def scenario():
        core = make_core(clock, transport, store, shutdown_grace=0.01)
        await core.start()
        await clock.advance(40)
        await core.stop()
        return core.is_running

    assert asyncio.run(scenario()) is False
    assert transport.sent == []
    assert transport.shutdown_calls == 1
