"""
Scheduling: clock, continuation store, cycle counter and report scheduler.
"""

from .clock import Clock, SystemClock, format_epoch_ms, to_datetime
from .continuation import ContinuationStore
from .cycle_counter import CycleCounter
from .scheduler import (
    BASE_INTERVAL_MS,
    ReportScheduler,
    SchedulerConfig,
    SchedulerState,
    StartupDecision,
    next_target_time,
    plan_startup,
)

__all__ = [
    "BASE_INTERVAL_MS",
    "Clock",
    "ContinuationStore",
    "CycleCounter",
    "ReportScheduler",
    "SchedulerConfig",
    "SchedulerState",
    "StartupDecision",
    "SystemClock",
    "format_epoch_ms",
    "next_target_time",
    "plan_startup",
    "to_datetime",
]
