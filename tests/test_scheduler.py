"""Tests for per-level refresh scheduling."""

import asyncio
import logging

import pytest

from repfinder import scheduler as scheduler_module
from repfinder.scheduler import (
    DAY,
    HOUR,
    RefreshScheduler,
    get_scheduler,
    init_scheduler,
    shutdown_scheduler,
)

from conftest import MockClock


class RecordingRefresh:
    """Async refresh function that records the levels it was asked to refresh."""

    def __init__(self, fail_on: str | None = None):
        self.levels = []
        self.fail_on = fail_on

    async def __call__(self, level):
        self.levels.append(level)
        if level == self.fail_on:
            raise RuntimeError(f"{level} upstream down")
        return {"level": level, "postal_codes": 1, "refreshed": 1, "failed": 0}


@pytest.fixture(autouse=True)
def reset_singleton():
    scheduler_module._scheduler = None
    yield
    scheduler_module._scheduler = None


def _scheduler(refresh=None, config=None):
    clock = MockClock()
    refresh = refresh or RecordingRefresh()
    return RefreshScheduler(refresh, config=config, clock=clock), refresh, clock


class TestCadence:

    def test_first_runs_are_staggered(self):
        sched, _, clock = _scheduler()
        start = clock()
        assert sched.next_run == {
            "federal": start,
            "state": start + 6 * HOUR,
            "county": start + 12 * HOUR,
            "municipal": start + 18 * HOUR,
        }

    def test_run_due_respects_stagger(self):
        sched, refresh, clock = _scheduler()
        start = clock()
        assert asyncio.run(sched.run_due()) == ["federal"]
        assert asyncio.run(sched.run_due(start + 6 * HOUR)) == ["state"]
        assert asyncio.run(sched.run_due(start + 11 * HOUR)) == []
        assert asyncio.run(sched.run_due(start + 18 * HOUR)) == ["county", "municipal"]
        assert refresh.levels == ["federal", "state", "county", "municipal"]

    def test_cadence_advances_after_run(self):
        sched, refresh, clock = _scheduler()
        start = clock()
        asyncio.run(sched.run_due(start))
        assert sched.next_run["federal"] == start + 7 * DAY
        assert asyncio.run(sched.run_due(start + 7 * DAY - 1)) == ["state", "county", "municipal"]
        assert sched.next_run["state"] == start + 7 * DAY - 1 + 14 * DAY
        assert sched.next_run["county"] == start + 7 * DAY - 1 + 30 * DAY
        assert asyncio.run(sched.run_due(start + 7 * DAY)) == ["federal"]
        assert refresh.levels.count("federal") == 2

    def test_cadence_from_config(self):
        sched, _, clock = _scheduler(config={"scheduler": {"cadence_days": {"municipal": 1}}})
        assert sched.cadence["municipal"] == DAY
        assert sched.cadence["federal"] == 7 * DAY

    def test_result_recorded(self):
        sched, _, _ = _scheduler()
        asyncio.run(sched.run_due())
        assert sched.last_result["federal"]["refreshed"] == 1


class TestEmergency:

    def test_single_level(self, caplog):
        sched, refresh, clock = _scheduler()
        clock.advance(HOUR)
        with caplog.at_level(logging.WARNING, logger="repfinder.scheduler"):
            assert asyncio.run(sched.trigger_emergency("county")) == ["county"]
        assert refresh.levels == ["county"]
        assert sched.next_run["county"] == clock() + 30 * DAY
        assert any("Emergency refresh triggered" in r.message for r in caplog.records)

    def test_all_levels(self):
        sched, refresh, _ = _scheduler()
        assert asyncio.run(sched.trigger_emergency()) == ["federal", "state", "county", "municipal"]
        assert refresh.levels == ["federal", "state", "county", "municipal"]

    def test_unknown_level(self):
        sched, refresh, _ = _scheduler()
        with pytest.raises(ValueError, match="Unknown government level"):
            asyncio.run(sched.trigger_emergency("school-board"))
        assert refresh.levels == []


class TestFailures:

    def test_failed_refresh_recorded_and_rescheduled(self, caplog):
        sched, refresh, clock = _scheduler(RecordingRefresh(fail_on="federal"))
        start = clock()
        with caplog.at_level(logging.ERROR, logger="repfinder.scheduler"):
            asyncio.run(sched.run_due(start + 18 * HOUR))
        assert sched.last_result["federal"] == {"level": "federal", "error": True}
        assert sched.last_result["state"]["refreshed"] == 1
        assert sched.next_run["federal"] == start + 18 * HOUR + 7 * DAY
        assert any("Refresh job for federal failed" in r.message for r in caplog.records)

    def test_overlapping_run_skipped(self):
        async def scenario():
            release = asyncio.Event()
            calls = []

            async def slow_refresh(level):
                calls.append(level)
                await release.wait()
                return {"level": level}

            sched = RefreshScheduler(slow_refresh, clock=MockClock())
            first = asyncio.create_task(sched.trigger_emergency("state"))
            await asyncio.sleep(0)
            await sched.trigger_emergency("state")
            release.set()
            await first
            return calls

        assert asyncio.run(scenario()) == ["state"]


class TestLifecycle:

    def test_start_and_stop(self):
        async def scenario():
            refresh = RecordingRefresh()
            sched = RefreshScheduler(refresh, clock=MockClock())
            sched.start()
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            running = sched.running
            await sched.stop()
            return running, sched.running, refresh.levels

        running, stopped_running, levels = asyncio.run(scenario())
        assert running is True
        assert stopped_running is False
        assert levels == ["federal"]

    def test_singleton(self):
        async def scenario():
            refresh = RecordingRefresh()
            first = init_scheduler(refresh, clock=MockClock())
            second = init_scheduler(RecordingRefresh(), clock=MockClock())
            same = first is second and get_scheduler() is first
            await shutdown_scheduler()
            return same, get_scheduler()

        same, after = asyncio.run(scenario())
        assert same is True
        assert after is None

    def test_init_without_start(self):
        sched = init_scheduler(RecordingRefresh(), start=False)
        assert sched.running is False
        assert get_scheduler() is sched
        asyncio.run(shutdown_scheduler())
        assert get_scheduler() is None
