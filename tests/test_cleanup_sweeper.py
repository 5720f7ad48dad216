import asyncio
from datetime import datetime, timedelta, timezone

from auth_gateway.infrastructure.rate_limit.cleanup_sweeper import CleanupSweeper
from auth_gateway.infrastructure.rate_limit.memory_attempt_tracker import InMemoryAttemptTracker


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class FailingTracker:
    def __init__(self):
        self.calls = 0

    def sweep(self):
        self.calls += 1
        raise RuntimeError("store unavailable")


def stale_tracker():
    clock = FakeClock()
    tracker = InMemoryAttemptTracker(clock=clock)
    tracker.record_attempt("+639123456789")
    tracker.record_attempt("+639998887777")
    clock.now += timedelta(hours=25)
    return tracker


def test_run_once_returns_evicted_count():
    tracker = stale_tracker()
    sweeper = CleanupSweeper(tracker)
    assert asyncio.run(sweeper.run_once()) == 2
    assert len(tracker) == 0


def test_background_loop_sweeps_until_stopped():
    tracker = stale_tracker()

    async def scenario():
        sweeper = CleanupSweeper(tracker, interval_seconds=0.01)
        await sweeper.start()
        assert sweeper.running
        for _ in range(200):
            if len(tracker) == 0:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()
        return sweeper

    sweeper = asyncio.run(scenario())
    assert len(tracker) == 0
    assert sweeper.running is False


def test_loop_survives_failing_sweep():
    tracker = FailingTracker()

    async def scenario():
        sweeper = CleanupSweeper(tracker, interval_seconds=0.01)
        await sweeper.start()
        for _ in range(200):
            if tracker.calls >= 2:
                break
            await asyncio.sleep(0.01)
        still_running = sweeper.running
        await sweeper.stop()
        return still_running

    assert asyncio.run(scenario()) is True
    assert tracker.calls >= 2
