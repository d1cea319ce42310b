"""
Tests for the report scheduler.
"""

import asyncio
import logging
import random
from unittest.mock import AsyncMock, Mock

import pytest

from uptime_goat.analysis.deviation import DeviationHeuristic
from uptime_goat.models.core import EndpointSet
from uptime_goat.reporting.dispatcher import ReportDispatcher
from uptime_goat.reporting.endpoints import EndpointDirectory
from uptime_goat.scheduling.continuation import ContinuationStore
from uptime_goat.scheduling.cycle_counter import CycleCounter
from uptime_goat.scheduling.scheduler import (
    BASE_INTERVAL_MS,
    ReportScheduler,
    SchedulerConfig,
    SchedulerState,
    StartupDecision,
    next_target_time,
    plan_startup,
)
from uptime_goat.utils.error_handling import ContinuationStateError
from uptime_goat.utils.structured_logging import logging_manager

NOW = 1_700_000_000_000
STARTUP_DELAY_MS = 25000


@pytest.fixture
def directory(sample_endpoints):
    """Endpoint directory holding the sample endpoints."""
    directory = Mock(spec=EndpointDirectory)
    directory.current.return_value = sample_endpoints
    directory.refresh = AsyncMock(return_value=sample_endpoints)
    return directory


@pytest.fixture
def dispatcher(make_outcome):
    """Dispatcher reporting small deviations from both targets."""
    dispatcher = Mock(spec=ReportDispatcher)
    dispatcher.dispatch = AsyncMock(return_value=[make_outcome("alpha", 100), make_outcome("beta", -200)])
    return dispatcher


@pytest.fixture
def rng():
    """Random source with a fixed startup delay."""
    rng = Mock(spec=random.Random)
    rng.randint.return_value = STARTUP_DELAY_MS
    return rng


@pytest.fixture
def scheduler(directory, dispatcher, store, fake_clock, rng):
    """Report scheduler wired to mocks and a virtual clock."""
    return ReportScheduler(
        directory=directory,
        dispatcher=dispatcher,
        heuristic=DeviationHeuristic(),
        store=store,
        cycle_counter=CycleCounter(),
        scheduler_config=SchedulerConfig(),
        clock=fake_clock,
        rng=rng
    )


class TestSchedulingRules:
    """Test cases for the pure scheduling rules."""

    @pytest.mark.parametrize("saved, expected", [
        (None, StartupDecision.FRESH_START),
        (NOW - 60000, StartupDecision.FRESH_START),
        (NOW, StartupDecision.FRESH_START),
        (NOW + 1, StartupDecision.TOO_CLOSE),
        (NOW + 999, StartupDecision.TOO_CLOSE),
        (NOW + 1000, StartupDecision.RESUME),
        (NOW + 59000, StartupDecision.RESUME),
    ])
    def test_plan_startup(self, saved, expected):
        """Test which persisted targets continue the streak."""
        assert plan_startup(saved, NOW, 1000) is expected

    def test_next_target_time(self):
        """Test advancing by the base interval and the extra delay."""
        assert next_target_time(NOW) == NOW + 60000
        assert next_target_time(NOW, 1000) == NOW + 61000

    def test_scheduler_config_from_scheduling_config(self, service_config):
        """Test building scheduler settings from service configuration."""
        service_config.scheduling.startup_delay_min_ms = 100
        service_config.scheduling.startup_delay_max_ms = 200

        config = SchedulerConfig.from_scheduling_config(service_config.scheduling)

        assert config.startup_delay_min_ms == 100
        assert config.startup_delay_max_ms == 200
        assert config.min_resume_lead_ms == 1000


class TestStartup:
    """Test cases for the startup protocol."""

    def test_initial_state(self, scheduler):
        """Test scheduler state before startup."""
        assert scheduler.state == SchedulerState.IDLE
        assert scheduler.target_time_ms is None
        assert scheduler.next_delay_ms() == 0

    @pytest.mark.asyncio
    async def test_resume_sleeps_exactly_until_saved_target(self, scheduler, store, fake_clock, rng):
        """Test that a far enough saved target is resumed without a random delay."""
        saved = NOW + 30000
        store.save(saved)

        target = await scheduler.startup()

        assert target == saved
        assert fake_clock.now == saved
        assert fake_clock.sleeps == [30000]
        assert scheduler.state == SchedulerState.RESUMING
        assert scheduler.startup_decision is StartupDecision.RESUME
        rng.randint.assert_not_called()

    @pytest.mark.asyncio
    async def test_resume_at_minimum_lead(self, scheduler, store, fake_clock):
        """Test that exactly one second of lead still resumes."""
        store.save(NOW + 1000)

        target = await scheduler.startup()

        assert target == NOW + 1000
        assert scheduler.startup_decision is StartupDecision.RESUME

    @pytest.mark.asyncio
    async def test_fresh_start_without_saved_target(self, scheduler, fake_clock, rng):
        """Test the randomized fresh start."""
        target = await scheduler.startup()

        rng.randint.assert_called_once_with(10000, 70000)
        assert fake_clock.sleeps == [STARTUP_DELAY_MS]
        assert target == NOW + STARTUP_DELAY_MS + BASE_INTERVAL_MS
        assert target == fake_clock.now + 60000
        assert scheduler.state == SchedulerState.FRESH_START
        assert scheduler.startup_decision is StartupDecision.FRESH_START

    @pytest.mark.asyncio
    async def test_stale_saved_target_starts_fresh(self, scheduler, store, fake_clock, rng):
        """Test that a saved target in the past is discarded."""
        store.save(NOW - 5000)

        target = await scheduler.startup()

        assert target == fake_clock.now + 60000
        assert scheduler.startup_decision is StartupDecision.FRESH_START
        rng.randint.assert_called_once()

    @pytest.mark.asyncio
    async def test_too_close_saved_target_starts_fresh(self, scheduler, store, fake_clock, rng, caplog):
        """Test that a target less than a second away breaks the streak."""
        store.save(NOW + 500)

        with caplog.at_level(logging.INFO):
            target = await scheduler.startup()

        assert scheduler.startup_decision is StartupDecision.TOO_CLOSE
        assert scheduler.state == SchedulerState.FRESH_START
        assert fake_clock.sleeps == [STARTUP_DELAY_MS]
        assert target == NOW + STARTUP_DELAY_MS + 60000
        assert "too close to save reliably" in caplog.text

    @pytest.mark.asyncio
    async def test_corrupt_state_starts_fresh(self, scheduler, state_file, fake_clock):
        """Test that an unparsable state file is ignored."""
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text("garbage")

        target = await scheduler.startup()

        assert scheduler.startup_decision is StartupDecision.FRESH_START
        assert target == fake_clock.now + 60000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(20))
    async def test_random_delay_within_bounds(self, directory, dispatcher, store, fake_clock, seed):
        """Test that the random startup delay stays within 10-70 seconds."""
        scheduler = ReportScheduler(
            directory, dispatcher, DeviationHeuristic(), store,
            clock=fake_clock, rng=random.Random(seed)
        )

        target = await scheduler.startup()

        assert 10000 <= fake_clock.sleeps[0] <= 70000
        assert target == NOW + fake_clock.sleeps[0] + 60000


class TestRunCycle:
    """Test cases for a single report cycle."""

    @pytest.mark.asyncio
    async def test_cycle_requires_startup(self, scheduler):
        """Test that a cycle cannot run before a target exists."""
        with pytest.raises(RuntimeError):
            await scheduler.run_cycle()

    @pytest.mark.asyncio
    async def test_cycle_advances_and_persists_target(self, scheduler, dispatcher, store, sample_endpoints):
        """Test one successful cycle."""
        start = await scheduler.startup()

        result = await scheduler.run_cycle()

        dispatcher.dispatch.assert_awaited_once_with(sample_endpoints, cycle_number=1)
        assert result.cycle_number == 1
        assert result.successful_reports == 2
        assert result.extra_delay_ms == 0
        assert result.target_time_ms == start + 60000
        assert scheduler.target_time_ms == start + 60000
        assert store.load() == start + 60000
        assert scheduler.cycle_counter.cycle_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("dispatch_ms", [0, 1500, 45000, 75000])
    async def test_target_independent_of_dispatch_duration(self, scheduler, dispatcher, fake_clock, make_outcome, dispatch_ms):
        """Test that slow cycles do not shift the schedule."""
        start = await scheduler.startup()

        async def slow_dispatch(endpoints, cycle_number=None):
            fake_clock.advance(dispatch_ms)
            return [make_outcome("alpha", 10)]

        dispatcher.dispatch.side_effect = slow_dispatch

        await scheduler.run_cycle()
        await scheduler.run_cycle()

        assert scheduler.target_time_ms == start + 2 * BASE_INTERVAL_MS
        assert scheduler.next_delay_ms() == max(0, start + 2 * BASE_INTERVAL_MS - fake_clock.now)

    @pytest.mark.asyncio
    async def test_marginal_deviations_add_extra_delay(self, scheduler, dispatcher, make_outcome):
        """Test that the heuristic's extra delay lengthens the next interval."""
        start = await scheduler.startup()
        dispatcher.dispatch.return_value = [make_outcome("alpha", 1500), make_outcome("beta", 1800)]

        result = await scheduler.run_cycle()

        assert result.extra_delay_ms == 1000
        assert scheduler.target_time_ms == start + 61000
        assert scheduler.cycle_counter.state.extra_delay_pending is True

        dispatcher.dispatch.return_value = [make_outcome("alpha", 10)]
        await scheduler.run_cycle()

        assert scheduler.target_time_ms == start + 121000
        assert scheduler.cycle_counter.state.extra_delay_pending is False

    @pytest.mark.asyncio
    async def test_dispatch_error_does_not_stop_advancement(self, scheduler, dispatcher, store, caplog):
        """Test that a raising dispatch is logged and the target still advances."""
        start = await scheduler.startup()
        dispatcher.dispatch.side_effect = RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            result = await scheduler.run_cycle()

        assert result.error == "boom"
        assert result.outcomes == []
        assert scheduler.target_time_ms == start + 60000
        assert store.load() == start + 60000
        assert scheduler.cycle_counter.cycle_count == 0
        assert "Error in report cycle: boom. Continuing..." in caplog.text

    @pytest.mark.asyncio
    async def test_failed_cycles_are_not_counted_toward_refresh(self, scheduler, dispatcher, directory, make_outcome):
        """Test that only cycles without an error advance the refresh cadence."""
        await scheduler.startup()
        dispatcher.dispatch.side_effect = RuntimeError("boom")
        for _ in range(10):
            result = await scheduler.run_cycle()
            assert result.refresh_attempted is False

        directory.refresh.assert_not_awaited()
        assert scheduler.cycle_counter.cycle_count == 0

        dispatcher.dispatch.side_effect = None
        dispatcher.dispatch.return_value = [make_outcome("alpha", 12)]
        results = [await scheduler.run_cycle() for _ in range(10)]

        assert [r.cycle_number for r in results if r.refresh_attempted] == [10]
        directory.refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_heuristic_error_does_not_stop_advancement(self, directory, dispatcher, store, fake_clock, rng):
        """Test that a raising heuristic is treated like any cycle error."""
        heuristic = Mock(spec=DeviationHeuristic)
        heuristic.evaluate.side_effect = ValueError("bad outcome")
        scheduler = ReportScheduler(directory, dispatcher, heuristic, store, clock=fake_clock, rng=rng)
        start = await scheduler.startup()

        result = await scheduler.run_cycle()

        assert result.error == "bad outcome"
        assert result.extra_delay_ms == 0
        assert scheduler.target_time_ms == start + 60000

    @pytest.mark.asyncio
    async def test_empty_endpoint_set_skips_dispatch(self, scheduler, directory, dispatcher, caplog):
        """Test that an empty set is logged and the schedule continues."""
        start = await scheduler.startup()
        directory.current.return_value = EndpointSet({})

        with caplog.at_level(logging.ERROR):
            result = await scheduler.run_cycle()

        dispatcher.dispatch.assert_not_awaited()
        assert result.outcomes == []
        assert scheduler.target_time_ms == start + 60000
        assert "No valid endpoints available, skipping this cycle" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_every_ten_cycles(self, scheduler, directory):
        """Test that refresh is attempted on cycles 10 and 20 only."""
        await scheduler.startup()

        results = [await scheduler.run_cycle() for _ in range(25)]

        refreshed = [r.cycle_number for r in results if r.refresh_attempted]
        assert refreshed == [10, 20]
        assert directory.refresh.await_count == 2
        assert results[9].refresh_succeeded is True

    @pytest.mark.asyncio
    async def test_refresh_failure_is_not_fatal(self, scheduler, directory, caplog):
        """Test that a failed refresh is logged and the schedule continues."""
        start = await scheduler.startup()
        directory.refresh.return_value = None

        with caplog.at_level(logging.INFO):
            results = [await scheduler.run_cycle() for _ in range(10)]

        assert results[-1].refresh_attempted is True
        assert results[-1].refresh_succeeded is False
        assert scheduler.target_time_ms == start + 10 * BASE_INTERVAL_MS
        assert "Endpoint update failed, continuing with existing endpoints" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_exception_is_not_fatal(self, scheduler, directory):
        """Test that an unexpected refresh error does not stop the cycle."""
        start = await scheduler.startup()
        directory.refresh.side_effect = RuntimeError("refresh exploded")

        results = [await scheduler.run_cycle() for _ in range(10)]

        assert results[-1].refresh_succeeded is False
        assert scheduler.target_time_ms == start + 10 * BASE_INTERVAL_MS

    @pytest.mark.asyncio
    async def test_counter_resets_with_new_process(self, directory, dispatcher, store, fake_clock, rng):
        """Test that refresh cadence follows this process, not the saved target."""
        first = ReportScheduler(directory, dispatcher, DeviationHeuristic(), store, clock=fake_clock, rng=rng)
        await first.startup()
        for _ in range(7):
            await first.run_cycle()

        fake_clock.now = store.load() - 30000
        second = ReportScheduler(directory, dispatcher, DeviationHeuristic(), store, clock=fake_clock, rng=rng)
        await second.startup()
        results = [await second.run_cycle() for _ in range(10)]

        assert second.startup_decision is StartupDecision.RESUME
        assert [r.cycle_number for r in results if r.refresh_attempted] == [10]

    @pytest.mark.asyncio
    async def test_save_failure_is_logged(self, directory, dispatcher, fake_clock, rng, caplog):
        """Test that a failed continuation write does not stop scheduling."""
        store = Mock(spec=ContinuationStore)
        store.load.return_value = None
        store.save.side_effect = ContinuationStateError("Failed to save timestamp to /data/x: read-only")
        scheduler = ReportScheduler(directory, dispatcher, DeviationHeuristic(), store, clock=fake_clock, rng=rng)
        start = await scheduler.startup()

        with caplog.at_level(logging.ERROR):
            await scheduler.run_cycle()

        assert scheduler.target_time_ms == start + 60000
        assert "read-only" in caplog.text

    @pytest.mark.asyncio
    async def test_each_cycle_has_own_correlation_id(self, scheduler, dispatcher, make_outcome):
        """Test that log lines of one cycle share a fresh correlation ID."""
        seen = []

        async def capture(endpoints, cycle_number=None):
            seen.append(logging_manager.get_correlation_id())
            return [make_outcome("alpha", 10)]

        dispatcher.dispatch.side_effect = capture
        await scheduler.startup()

        await scheduler.run_cycle()
        await scheduler.run_cycle()

        assert all(seen)
        assert seen[0] != seen[1]
        assert logging_manager.get_correlation_id() is None

    @pytest.mark.asyncio
    async def test_get_status(self, scheduler):
        """Test scheduler status reporting."""
        start = await scheduler.startup()
        await scheduler.run_cycle()

        status = scheduler.get_status()

        assert status["state"] == "fresh_start"
        assert status["startup_decision"] == "fresh_start"
        assert status["target_time_ms"] == start + 60000
        assert status["cycle_count"] == 1
        assert status["endpoints"] == 2
        assert status["scheduler_running"] is False
        assert status["last_cycle"]["cycle_number"] == 1
        assert status["last_cycle"]["successful_reports"] == 2
        assert len(status["recent_cycles"]) == 1


class TestRunForever:
    """Test cases for running the scheduler on the APScheduler timer."""

    @pytest.mark.asyncio
    async def test_runs_max_cycles(self, scheduler, dispatcher, store, fake_clock):
        """Test that the first cycle runs right after startup and cycles chain."""
        await asyncio.wait_for(scheduler.run_forever(max_cycles=3), timeout=10)

        start = NOW + STARTUP_DELAY_MS + BASE_INTERVAL_MS
        assert dispatcher.dispatch.await_count == 3
        assert scheduler.state == SchedulerState.STOPPED
        assert scheduler.target_time_ms == start + 3 * BASE_INTERVAL_MS
        assert store.load() == start + 3 * BASE_INTERVAL_MS
        assert [r.cycle_number for r in scheduler.history] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_failing_cycles_keep_heartbeat(self, scheduler, dispatcher, store):
        """Test that cycles keep being scheduled when every dispatch raises."""
        dispatcher.dispatch.side_effect = RuntimeError("network down")

        await asyncio.wait_for(scheduler.run_forever(max_cycles=4), timeout=10)

        assert dispatcher.dispatch.await_count == 4
        assert all(r.error == "network down" for r in scheduler.history)

    @pytest.mark.asyncio
    async def test_stop_during_startup_sleep(self, directory, dispatcher, store, blocking_clock, rng):
        """Test that a stop request cancels the startup sleep immediately."""
        scheduler = ReportScheduler(directory, dispatcher, DeviationHeuristic(), store, clock=blocking_clock, rng=rng)

        task = asyncio.ensure_future(scheduler.run_forever())
        while not blocking_clock.sleeps:
            await asyncio.sleep(0)

        scheduler.request_stop()
        await asyncio.wait_for(task, timeout=1)

        assert scheduler.state == SchedulerState.STOPPED
        dispatcher.dispatch.assert_not_awaited()
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_stop_between_cycles(self, scheduler, dispatcher, store, make_outcome):
        """Test that a stop request ends the run after the current cycle."""

        async def stop_after_first(endpoints, cycle_number=None):
            scheduler.request_stop()
            return [make_outcome("alpha", 10)]

        dispatcher.dispatch.side_effect = stop_after_first

        await asyncio.wait_for(scheduler.run_forever(), timeout=10)

        assert dispatcher.dispatch.await_count == 1
        assert scheduler.state == SchedulerState.STOPPED
        assert store.load() == NOW + STARTUP_DELAY_MS + 2 * BASE_INTERVAL_MS

    @pytest.mark.asyncio
    async def test_run_forever_only_once(self, scheduler):
        """Test that a stopped scheduler cannot be restarted."""
        await asyncio.wait_for(scheduler.run_forever(max_cycles=1), timeout=10)

        with pytest.raises(RuntimeError):
            await scheduler.run_forever()

    def test_request_stop_is_idempotent(self, scheduler):
        """Test repeated stop requests."""
        scheduler.request_stop()
        scheduler.request_stop()

        assert scheduler.state == SchedulerState.STOPPING
