import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from telemetry_agent.durable_queue import DurableQueue
from telemetry_agent.lifecycle import AppState, ManualLifecycle
from telemetry_agent.scheduler import BatchScheduler, SchedulerState
from telemetry_agent.transport import Outcome, OutcomeKind

from conftest import make_envelope


def success(n=0):
    return Outcome(OutcomeKind.SUCCESS, status=200, received=n, inserted=n)


class GatedTransport:
    """Holds every send open until ``release`` is called."""

    def __init__(self, outcome):
        self.outcome = outcome
        self.sent = []
        self.started = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self):
        self._gate.set()

    async def send(self, batch):
        self.sent.append([e["event_id"] for e in batch])
        self.started.set()
        await self._gate.wait()
        return self.outcome


def fill(queue, count, prefix="e"):
    for i in range(count):
        queue.enqueue(make_envelope(event_id=f"{prefix}{i}"))


async def test_empty_queue_returns_to_idle_without_sending(kv_store):
    transport = MagicMock()
    transport.send = AsyncMock()
    scheduler = BatchScheduler(DurableQueue(kv_store), transport)

    assert await scheduler.flush() is None

    transport.send.assert_not_awaited()
    assert scheduler.state is SchedulerState.IDLE


async def test_success_clears_sent_events(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 3)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=success(3))
    scheduler = BatchScheduler(queue, transport, batch_size=50)

    outcome = await scheduler.flush()

    assert outcome.ok
    assert queue.size() == 0


async def test_flush_sends_at_most_batch_size_oldest_first(kv_store):
    queue = DurableQueue(kv_store)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=success())
    scheduler = BatchScheduler(queue, transport, batch_size=10)
    fill(queue, 15)

    await scheduler.flush()

    sent = transport.send.await_args.args[0]
    assert [e["event_id"] for e in sent] == [f"e{i}" for i in range(10)]
    assert queue.event_ids() == [f"e{i}" for i in range(10, 15)]


async def test_retryable_failure_leaves_batch_queued(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 4)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=Outcome(OutcomeKind.RETRYABLE, reason="HTTP 503", attempts=5))
    scheduler = BatchScheduler(queue, transport)

    await scheduler.flush()

    assert queue.event_ids() == ["e0", "e1", "e2", "e3"]


async def test_terminal_failure_drops_batch_and_calls_hook(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 2)
    outcome = Outcome(OutcomeKind.TERMINAL, status=413, reason="HTTP 413")
    transport = MagicMock()
    transport.send = AsyncMock(return_value=outcome)
    hook = MagicMock()
    scheduler = BatchScheduler(queue, transport, on_terminal_failure=hook)

    await scheduler.flush()
    await scheduler.flush()

    assert queue.size() == 0
    transport.send.assert_awaited_once()
    dropped_batch, reported = hook.call_args.args
    assert [e["event_id"] for e in dropped_batch] == ["e0", "e1"]
    assert reported is outcome


async def test_failing_hook_does_not_escape(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 1)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=Outcome(OutcomeKind.TERMINAL, status=400))
    scheduler = BatchScheduler(queue, transport, on_terminal_failure=MagicMock(side_effect=RuntimeError))

    await scheduler.flush()

    assert queue.size() == 0


async def test_transport_bug_keeps_batch_queued(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 2)
    transport = MagicMock()
    transport.send = AsyncMock(side_effect=ValueError("boom"))
    scheduler = BatchScheduler(queue, transport)

    assert await scheduler.flush() is None
    assert queue.size() == 2
    assert scheduler.state is SchedulerState.IDLE


async def test_enqueue_during_flush_survives_acknowledgement(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 20, prefix="old")
    transport = GatedTransport(success(20))
    scheduler = BatchScheduler(queue, transport, batch_size=50)

    flush = asyncio.create_task(scheduler.flush())
    await transport.started.wait()
    fill(queue, 5, prefix="new")
    transport.release()
    await flush

    assert queue.event_ids() == [f"new{i}" for i in range(5)]


async def test_triggers_during_flush_are_coalesced(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 3)
    transport = GatedTransport(success(3))
    scheduler = BatchScheduler(queue, transport)

    flush = asyncio.create_task(scheduler.flush("timer"))
    await transport.started.wait()

    assert scheduler.is_flushing
    assert await scheduler.flush("manual") is None
    assert scheduler.trigger("foreground") is None

    transport.release()
    await flush

    assert transport.sent == [["e0", "e1", "e2"]]
    assert scheduler.coalesced_triggers == 2


async def test_reaching_batch_size_triggers_flush(kv_store):
    queue = DurableQueue(kv_store)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=success(3))
    BatchScheduler(queue, transport, batch_size=3)

    fill(queue, 3)
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    transport.send.assert_awaited_once()
    assert queue.size() == 0


async def test_lifecycle_transitions_trigger_flush(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 1)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=success(1))
    lifecycle = ManualLifecycle()
    seen = []
    scheduler = BatchScheduler(
        queue, transport, flush_interval=3600, lifecycle=lifecycle, on_lifecycle=seen.append
    )
    scheduler.start()

    lifecycle.emit(AppState.BACKGROUND)
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert seen == [AppState.BACKGROUND]
    transport.send.assert_awaited_once()

    await scheduler.stop()
    assert lifecycle.subscriber_count == 0


async def test_timer_flushes_periodically(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 1)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=success(1))
    ticks = []

    async def tick(delay):
        ticks.append(delay)
        await asyncio.sleep(0)

    scheduler = BatchScheduler(queue, transport, flush_interval=15, sleep=tick)
    scheduler.start()
    for _ in range(10):
        await asyncio.sleep(0)
    await scheduler.stop()

    assert ticks and set(ticks) == {15}
    transport.send.assert_awaited_once()
    assert queue.size() == 0


async def test_stop_cancels_in_flight_flush_and_keeps_batch(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 2)
    transport = GatedTransport(success(2))
    scheduler = BatchScheduler(queue, transport)

    scheduler.trigger("manual")
    await transport.started.wait()
    await scheduler.stop()

    assert queue.event_ids() == ["e0", "e1"]
    assert scheduler.state is SchedulerState.IDLE


def test_trigger_without_running_loop_is_noop(kv_store):
    transport = MagicMock()
    scheduler = BatchScheduler(DurableQueue(kv_store), transport)
    assert scheduler.trigger("threshold") is None


@pytest.mark.parametrize("state", [AppState.FOREGROUND, AppState.BACKGROUND])
async def test_lifecycle_trigger_with_empty_queue_is_harmless(kv_store, state):
    transport = MagicMock()
    transport.send = AsyncMock()
    lifecycle = ManualLifecycle()
    scheduler = BatchScheduler(DurableQueue(kv_store), transport, flush_interval=3600, lifecycle=lifecycle)
    scheduler.start()

    lifecycle.emit(state)
    await asyncio.sleep(0)

    transport.send.assert_not_awaited()
    await scheduler.stop()


async def test_burst_of_enqueues_schedules_one_flush(kv_store):
    queue = DurableQueue(kv_store)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=success(3))
    scheduler = BatchScheduler(queue, transport, batch_size=3)

    fill(queue, 10)

    assert len(scheduler._flush_tasks) == 1
    assert scheduler.coalesced_triggers == 7

    await asyncio.gather(*scheduler._flush_tasks)
    transport.send.assert_awaited_once()


async def test_drain_sends_until_queue_is_empty(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 120)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=success(50))
    scheduler = BatchScheduler(queue, transport, batch_size=50)

    await scheduler.drain()

    assert transport.send.await_count == 3
    assert queue.size() == 0


async def test_drain_stops_on_retryable_failure(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 120)
    transport = MagicMock()
    transport.send = AsyncMock(return_value=Outcome(OutcomeKind.RETRYABLE, reason="timeout", attempts=5))
    scheduler = BatchScheduler(queue, transport, batch_size=50)

    await scheduler.drain()

    transport.send.assert_awaited_once()
    assert queue.size() == 120


async def test_drain_waits_for_running_flush(kv_store):
    queue = DurableQueue(kv_store)
    fill(queue, 3)
    transport = GatedTransport(success(3))
    scheduler = BatchScheduler(queue, transport)

    scheduler.trigger("timer")
    await transport.started.wait()
    asyncio.get_running_loop().call_later(0.05, transport.release)
    await scheduler.drain()

    assert transport.sent == [["e0", "e1", "e2"]]
    assert queue.size() == 0
