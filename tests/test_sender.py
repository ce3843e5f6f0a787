import asyncio

import pytest

from conftest import FakeClock, FakeTransport

from core.rate_limiter import SlidingWindowRateLimiter
from core.sender import DeliveryCoordinator
from features.alerts import AlertSystem


class SlowTransport(FakeTransport):
    """send() yields to the loop before completing"""

    async def send(self, recipient: str, text: str) -> None:
        for _ in range(3):
            await asyncio.sleep(0)
        await super().send(recipient, text)


def test_denied_recipient_is_queued_and_counted_as_failure() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        limiter = SlidingWindowRateLimiter(per_recipient=1, clock=clock)
        limiter.record_sent('B')
        alerts = AlertSystem(clock)
        coordinator = DeliveryCoordinator(
            transport, limiter, clock=clock, inter_recipient_delay=3, alerts=alerts
        )

        task = asyncio.create_task(coordinator.deliver_batch(['A', 'B', 'C'], 'hello'))
        await clock.advance(10)
        return await task, limiter, alerts

    result, limiter, alerts = asyncio.run(scenario())

    assert result.as_dict() == {'successCount': 2, 'failCount': 1, 'total': 3, 'queued': 1}
    assert transport.sent == [('A', 'hello'), ('C', 'hello')]
    assert [item.recipient for item in limiter.queued] == ['B']
    assert clock.sleeps == [3]
    assert alerts.get_recent_alerts()[0]['type'] == 'rate_limit_exceeded'


def test_queued_recipient_is_delivered_by_the_next_drain() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        limiter = SlidingWindowRateLimiter(per_recipient=1, clock=clock)
        limiter.record_sent('B')
        coordinator = DeliveryCoordinator(transport, limiter, clock=clock, inter_recipient_delay=0)
        await coordinator.deliver_batch(['B'], 'hello')
        clock.now += 61
        return await limiter.process_queue()

    assert asyncio.run(scenario()) == 1
    assert transport.sent == [('B', 'hello')]


def test_transport_failure_is_counted_and_batch_continues() -> None:
    clock = FakeClock()
    transport = FakeTransport()
    transport.fail_for = {'B'}

    async def scenario():
        limiter = SlidingWindowRateLimiter(clock=clock)
        coordinator = DeliveryCoordinator(transport, limiter, clock=clock, inter_recipient_delay=3)
        task = asyncio.create_task(coordinator.deliver_batch(['A', 'B', 'C'], 'hello'))
        await clock.advance(10)
        return await task, limiter.get_stats()

    result, stats = asyncio.run(scenario())

    assert (result.success_count, result.fail_count, result.queued_count) == (2, 1, 0)
    assert result.failed_recipients == ['B']
    assert transport.sent == [('A', 'hello'), ('C', 'hello')]
    assert stats['last_minute_count'] == 2
    assert clock.sleeps == [3]


def test_no_delay_after_last_recipient() -> None:
    clock = FakeClock()
    transport = FakeTransport()

    async def scenario():
        limiter = SlidingWindowRateLimiter(clock=clock)
        coordinator = DeliveryCoordinator(transport, limiter, clock=clock, inter_recipient_delay=3)
        return await coordinator.deliver_batch(['A'], 'hello')

    result = asyncio.run(scenario())

    assert result.success_count == 1
    assert clock.sleeps == []


@pytest.mark.parametrize('recipients, message', [([], 'hello'), (['A'], '   ')])
def test_empty_batch_is_rejected(recipients, message) -> None:
    clock = FakeClock()

    async def scenario():
        limiter = SlidingWindowRateLimiter(clock=clock)
        coordinator = DeliveryCoordinator(FakeTransport(), limiter, clock=clock)
        await coordinator.deliver_batch(recipients, message)

    with pytest.raises(ValueError):
        asyncio.run(scenario())


def test_concurrent_batches_share_the_minute_limit() -> None:
    clock = FakeClock()
    transport = SlowTransport()

    async def scenario():
        limiter = SlidingWindowRateLimiter(per_minute=1, clock=clock)
        coordinator = DeliveryCoordinator(
            transport, limiter, clock=clock, inter_recipient_delay=0
        )
        results = await asyncio.gather(
            coordinator.deliver_batch(['A'], 'first'),
            coordinator.deliver_batch(['B'], 'second'),
        )
        return results, limiter

    results, limiter = asyncio.run(scenario())

    assert len(transport.sent) == 1
    assert len(limiter.queued) == 1
    assert sum(r.success_count for r in results) == 1
    assert sum(r.queued_count for r in results) == 1
    assert limiter.get_stats()['last_minute_count'] == 1
