"""
Report scheduler for driving report cycles at absolute target times.
"""

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from uptime_goat.analysis.deviation import DeviationHeuristic
from uptime_goat.config.models import SchedulingConfig
from uptime_goat.models.core import CycleResult, ReportOutcome
from uptime_goat.reporting.dispatcher import ReportDispatcher
from uptime_goat.reporting.endpoints import EndpointDirectory
from uptime_goat.scheduling.clock import Clock, SystemClock, format_epoch_ms, to_datetime
from uptime_goat.scheduling.continuation import ContinuationStore
from uptime_goat.scheduling.cycle_counter import CycleCounter
from uptime_goat.utils.error_handling import ContinuationStateError, describe_error
from uptime_goat.utils.structured_logging import with_correlation_id

logger = logging.getLogger(__name__)

BASE_INTERVAL_MS = 60000
CYCLE_JOB_ID = "report_cycle"


class SchedulerState(Enum):
    """Scheduler state enumeration."""
    IDLE = "idle"
    RESUMING = "resuming"
    FRESH_START = "fresh_start"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class StartupDecision(Enum):
    """How a process start treats a persisted target time."""
    RESUME = "resume"
    FRESH_START = "fresh_start"
    TOO_CLOSE = "too_close"


def plan_startup(saved_target_ms: Optional[int], now_ms: int, min_resume_lead_ms: int = 1000) -> StartupDecision:
    """
    Decide whether a persisted target time can continue the streak.

    Only a target strictly in the future and at least ``min_resume_lead_ms``
    away is trusted.
    """
    if saved_target_ms is None or saved_target_ms <= now_ms:
        return StartupDecision.FRESH_START
    if saved_target_ms - now_ms >= min_resume_lead_ms:
        return StartupDecision.RESUME
    return StartupDecision.TOO_CLOSE


def next_target_time(target_ms: int, extra_delay_ms: int = 0) -> int:
    """Advance a target time by one base interval plus any extra delay."""
    return target_ms + BASE_INTERVAL_MS + extra_delay_ms


@dataclass
class SchedulerConfig:
    """Configuration for the report scheduler."""
    timezone: str = "UTC"
    startup_delay_min_ms: int = 10000
    startup_delay_max_ms: int = 70000
    min_resume_lead_ms: int = 1000
    history_size: int = 20
    # The next cycle is added while the current cycle job is still finishing.
    job_defaults: Dict[str, Any] = field(default_factory=lambda: {
        'coalesce': True,
        'max_instances': 2
    })

    @classmethod
    def from_scheduling_config(cls, scheduling: SchedulingConfig) -> "SchedulerConfig":
        return cls(
            startup_delay_min_ms=scheduling.startup_delay_min_ms,
            startup_delay_max_ms=scheduling.startup_delay_max_ms,
            min_resume_lead_ms=scheduling.min_resume_lead_ms
        )


class ReportScheduler:
    """
    Drives report cycles at absolute target times.

    The target time is advanced by a fixed interval after every cycle,
    independent of how long the cycle took, and persisted so that a
    restarted process can continue on the same schedule. Each cycle is a
    one-shot APScheduler job that re-adds itself for the next target.
    """

    def __init__(
        self,
        directory: EndpointDirectory,
        dispatcher: ReportDispatcher,
        heuristic: DeviationHeuristic,
        store: ContinuationStore,
        cycle_counter: Optional[CycleCounter] = None,
        scheduler_config: Optional[SchedulerConfig] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the report scheduler.

        Args:
            directory: Endpoint directory supplying each cycle's targets
            dispatcher: Report dispatcher
            heuristic: Deviation heuristic deciding the extra delay
            store: Continuation store for the target time
            cycle_counter: Cycle counter and refresh trigger
            scheduler_config: Scheduler-specific configuration
            clock: Time source, the system clock by default
            rng: Random source for the startup delay
        """
        self.directory = directory
        self.dispatcher = dispatcher
        self.heuristic = heuristic
        self.store = store
        self.cycle_counter = cycle_counter or CycleCounter()
        self.scheduler_config = scheduler_config or SchedulerConfig()
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()

        self._scheduler = AsyncIOScheduler(
            timezone=self.scheduler_config.timezone,
            job_defaults=self.scheduler_config.job_defaults
        )

        self._state = SchedulerState.IDLE
        self._target_ms: Optional[int] = None
        self._startup_decision: Optional[StartupDecision] = None
        self._history: Deque[CycleResult] = deque(maxlen=self.scheduler_config.history_size)
        self._max_cycles: Optional[int] = None
        self._cycles_run = 0
        self._startup_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

        self._setup_event_listeners()

    def _setup_event_listeners(self) -> None:
        """Setup APScheduler event listeners for anomalies."""

        def job_error_listener(event: JobExecutionEvent):
            logger.error(f"Report cycle job {event.job_id} failed: {event.exception}")

        def job_missed_listener(event: JobExecutionEvent):
            logger.warning(f"Report cycle job {event.job_id} missed its run time {event.scheduled_run_time}")

        self._scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
        self._scheduler.add_listener(job_missed_listener, EVENT_JOB_MISSED)

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def target_time_ms(self) -> Optional[int]:
        return self._target_ms

    @property
    def startup_decision(self) -> Optional[StartupDecision]:
        return self._startup_decision

    @property
    def history(self) -> List[CycleResult]:
        return list(self._history)

    async def startup(self) -> int:
        """
        Run the startup protocol and establish the first target time.

        Resumes a persisted target when it is far enough in the future;
        otherwise sleeps a random delay and starts a fresh schedule.

        Returns:
            The initial target time in epoch milliseconds
        """
        saved_ms = self.store.load()
        now_ms = self.clock.now_ms()

        if saved_ms is not None:
            logger.info(f"📖 Loaded saved target: {format_epoch_ms(saved_ms)}")

        decision = plan_startup(saved_ms, now_ms, self.scheduler_config.min_resume_lead_ms)
        self._startup_decision = decision

        if decision is StartupDecision.RESUME:
            self._state = SchedulerState.RESUMING
            logger.info(f"🔥 Consecutives saved! Next report in {(saved_ms - now_ms) / 1000:.1f}s...")
            await self.clock.sleep(max(0, saved_ms - self.clock.now_ms()))
            self._target_ms = saved_ms
            return self._target_ms

        if decision is StartupDecision.TOO_CLOSE:
            logger.info(f"Next report in {(saved_ms - now_ms) / 1000:.1f}s - too close to save reliably")

        self._state = SchedulerState.FRESH_START
        initial_sleep = self.rng.randint(
            self.scheduler_config.startup_delay_min_ms,
            self.scheduler_config.startup_delay_max_ms
        )
        logger.info(f"😴 Sleeping for {initial_sleep / 1000:.1f} seconds before starting...")
        await self.clock.sleep(initial_sleep)
        self._target_ms = self.clock.now_ms() + BASE_INTERVAL_MS
        return self._target_ms

    @with_correlation_id()
    async def run_cycle(self) -> CycleResult:
        """
        Execute one report cycle and advance the target time.

        Errors in dispatch, heuristic evaluation or refresh are logged and
        never prevent the target time from advancing.

        Returns:
            CycleResult describing the cycle
        """
        if self._target_ms is None:
            raise RuntimeError("Report scheduler has not completed startup")

        started_at = datetime.now()
        cycle_number = self.cycle_counter.cycle_count + 1
        outcomes: List[ReportOutcome] = []
        extra_delay_ms = 0
        error: Optional[str] = None

        try:
            endpoints = self.directory.current()
            if endpoints:
                outcomes = await self.dispatcher.dispatch(endpoints, cycle_number=cycle_number)
                extra_delay_ms = self.heuristic.evaluate(outcomes)
            else:
                logger.error("No valid endpoints available, skipping this cycle")
        except Exception as e:
            error = describe_error(e)
            logger.error(f"Error in report cycle: {error}. Continuing...", exc_info=True)

        refresh_attempted = False
        refresh_succeeded: Optional[bool] = None
        # A cycle whose body raised is not counted toward the refresh period.
        if error is None and self.cycle_counter.record_cycle(extra_delay_pending=extra_delay_ms > 0):
            refresh_attempted = True
            try:
                refresh_succeeded = await self.directory.refresh() is not None
            except Exception as e:
                refresh_succeeded = False
                logger.error(f"Error refreshing endpoints: {describe_error(e)}", exc_info=True)
            if not refresh_succeeded:
                logger.info("Endpoint update failed, continuing with existing endpoints")

        self._target_ms = next_target_time(self._target_ms, extra_delay_ms)
        self._persist_target(self._target_ms)

        result = CycleResult(
            cycle_number=cycle_number,
            outcomes=outcomes,
            extra_delay_ms=extra_delay_ms,
            target_time_ms=self._target_ms,
            started_at=started_at,
            refresh_attempted=refresh_attempted,
            refresh_succeeded=refresh_succeeded,
            error=error
        )
        self._history.append(result)

        logger.debug(
            f"Cycle {cycle_number} complete: {result.successful_reports}/{len(outcomes)} reports, "
            f"next target {format_epoch_ms(self._target_ms)}"
        )
        return result

    def _persist_target(self, target_ms: int) -> None:
        try:
            self.store.save(target_ms)
        except ContinuationStateError as e:
            logger.error(f"Failed to save timestamp: {e}")

    def next_delay_ms(self) -> int:
        """Milliseconds until the current target time, never negative."""
        if self._target_ms is None:
            return 0
        return max(0, self._target_ms - self.clock.now_ms())

    def _schedule_at(self, run_at_ms: int) -> None:
        self._scheduler.add_job(
            self._run_cycle_job,
            trigger=DateTrigger(run_date=to_datetime(run_at_ms)),
            id=CYCLE_JOB_ID,
            name="Report cycle",
            replace_existing=True,
            misfire_grace_time=None
        )

    def _schedule_next(self) -> None:
        """Schedule the next cycle for the current target time."""
        self._schedule_at(self.clock.now_ms() + self.next_delay_ms())
        logger.debug(f"Next cycle scheduled in {self.next_delay_ms()}ms")

    async def _run_cycle_job(self) -> None:
        try:
            await self.run_cycle()
        except Exception as e:
            logger.error(f"Unexpected error in report cycle: {describe_error(e)}", exc_info=True)
        finally:
            self._cycles_run += 1
            if self._max_cycles is not None and self._cycles_run >= self._max_cycles:
                logger.info(f"Completed {self._cycles_run} cycles, stopping")
                self.request_stop()
            elif self._state == SchedulerState.RUNNING:
                self._schedule_next()

    async def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """
        Run the startup protocol and then report cycles until stopped.

        Args:
            max_cycles: Stop after this many cycles; run indefinitely if None
        """
        if self._state != SchedulerState.IDLE:
            raise RuntimeError(f"Report scheduler already in state: {self._state.value}")

        self._max_cycles = max_cycles
        self._startup_task = asyncio.ensure_future(self.startup())
        try:
            await self._startup_task
        except asyncio.CancelledError:
            if not self._shutdown_event.is_set():
                raise
        finally:
            self._startup_task = None

        if self._shutdown_event.is_set():
            self._state = SchedulerState.STOPPED
            logger.info("Stopped before the first report cycle")
            return

        try:
            self._scheduler.start()
            self._state = SchedulerState.RUNNING
            # The first cycle runs as soon as startup completes.
            self._schedule_at(self.clock.now_ms())
            await self._shutdown_event.wait()
        finally:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
            self._state = SchedulerState.STOPPED
            logger.info("Report scheduler stopped")

    def request_stop(self) -> None:
        """Ask the scheduler to stop; safe to call from a signal handler."""
        if self._state in (SchedulerState.STOPPING, SchedulerState.STOPPED):
            return

        self._state = SchedulerState.STOPPING
        self._shutdown_event.set()
        if self._startup_task is not None and not self._startup_task.done():
            self._startup_task.cancel()

    def get_status(self) -> Dict[str, Any]:
        """
        Get scheduler status.

        Returns:
            Dictionary with state, target time and recent cycle results
        """
        last = self._history[-1] if self._history else None
        return {
            "state": self._state.value,
            "startup_decision": self._startup_decision.value if self._startup_decision else None,
            "target_time_ms": self._target_ms,
            "target_time": format_epoch_ms(self._target_ms) if self._target_ms is not None else None,
            "next_run_in_ms": self.next_delay_ms(),
            "cycle_count": self.cycle_counter.cycle_count,
            "endpoints": len(self.directory.current()),
            "scheduler_running": self._scheduler.running,
            "last_cycle": last.to_dict() if last else None,
            "recent_cycles": [result.to_dict() for result in self._history]
        }
