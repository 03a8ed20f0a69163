"""
Unit tests for UpdateScheduler.

Tests cover:
- Sequential execution and return values
- Reentrant submission (queued, not inlined)
- Concurrent submission from several tasks
- Fault handling
- Cancellation of the draining caller
"""

import asyncio

import pytest

from service.profilesync_server.session.scheduler import SchedulerState, UpdateScheduler


class TestUpdateScheduler:
    """Tests for UpdateScheduler."""

    @pytest.fixture
    def log(self):
        return []

    @pytest.fixture
    def scheduler(self, log):
        """Scheduler whose turn just calls the mutation with a shared log."""

        async def turn(mutation):
            result = mutation(log)
            if asyncio.iscoroutine(result):
                await result

        return UpdateScheduler(turn, name="test")

    @pytest.mark.asyncio
    async def test_idle_submit_runs_immediately(self, scheduler, log):
        """Submitting while idle drains and returns True."""
        ran = await scheduler.submit(lambda entries: entries.append("m1"))

        assert ran is True
        assert log == ["m1"]
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_reentrant_submit_is_queued(self, scheduler, log):
        """A mutation submitted from inside a turn runs after it, not inline."""
        results = {}

        async def m1(entries):
            entries.append("m1 start")
            results["m2"] = await scheduler.submit(lambda e: e.append("m2"))
            entries.append("m1 end")

        await scheduler.submit(m1)

        assert results["m2"] is False
        assert log == ["m1 start", "m1 end", "m2"]

    @pytest.mark.asyncio
    async def test_fifo_order_with_reentrancy(self, scheduler, log):
        """m1 submits m2 and m3 submitted later still runs after m2."""

        async def m1(entries):
            entries.append("m1")
            await scheduler.submit(lambda e: e.append("m2"))
            await asyncio.sleep(0.01)

        first = asyncio.create_task(scheduler.submit(m1))
        await asyncio.sleep(0)
        queued = await scheduler.submit(lambda e: e.append("m3"))
        await first

        assert queued is False
        assert log == ["m1", "m2", "m3"]

    @pytest.mark.asyncio
    async def test_concurrent_submitters(self, scheduler, log):
        """Only one caller drains; every mutation runs once, in order."""

        async def slow(entries, value):
            await asyncio.sleep(0.001)
            entries.append(value)

        results = await asyncio.gather(
            *(scheduler.submit(lambda e, v=i: slow(e, v)) for i in range(5))
        )

        assert log == [0, 1, 2, 3, 4]
        assert results.count(True) == 1
        assert scheduler.stats["executed_count"] == 5

    @pytest.mark.asyncio
    async def test_no_overlapping_turns(self, scheduler):
        """At most one turn is in flight at a time."""
        active = 0
        peak = 0

        async def tracked(entries):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.001)
            active -= 1

        await asyncio.gather(*(scheduler.submit(tracked) for _ in range(10)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_failing_mutation_does_not_stop_drain(self, scheduler, log):
        """A raising mutation is logged and the next one still runs."""

        async def m1(entries):
            await scheduler.submit(lambda e: e.append("m2"))
            raise RuntimeError("boom")

        ran = await scheduler.submit(m1)

        assert ran is True
        assert log == ["m2"]
        assert scheduler.stats["fault_count"] == 1
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_cancelled_drainer_hands_off_queue(self, scheduler, log):
        """Cancelling the draining caller does not strand queued mutations."""
        started = asyncio.Event()

        async def blocker(entries):
            started.set()
            await asyncio.sleep(10)

        drainer = asyncio.create_task(scheduler.submit(blocker))
        await started.wait()
        await scheduler.submit(lambda e: e.append("queued"))

        drainer.cancel()
        with pytest.raises(asyncio.CancelledError):
            await drainer

        await asyncio.wait_for(scheduler.wait_idle(), timeout=1)
        assert log == ["queued"]

    @pytest.mark.asyncio
    async def test_wait_idle(self, scheduler, log):
        """wait_idle() returns once the queue is empty."""

        async def slow(entries):
            await asyncio.sleep(0.01)
            entries.append("done")

        task = asyncio.create_task(scheduler.submit(slow))
        await asyncio.sleep(0)
        assert scheduler.state is SchedulerState.RUNNING

        await scheduler.wait_idle()
        assert log == ["done"]
        await task

    @pytest.mark.asyncio
    async def test_stats(self, scheduler):
        await scheduler.submit(lambda e: None)

        stats = scheduler.stats
        assert stats["state"] == "idle"
        assert stats["pending"] == 0
        assert stats["submitted_count"] == 1
        assert stats["executed_count"] == 1
