"""
Wall clock abstraction in epoch milliseconds.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Source of "now" and of sleeping, swappable in tests."""

    @abstractmethod
    def now_ms(self) -> int:
        """Current time in epoch milliseconds."""
        pass

    @abstractmethod
    async def sleep(self, ms: int) -> None:
        """Sleep for the given number of milliseconds."""
        pass


class SystemClock(Clock):
    """Clock backed by time.time() and asyncio.sleep()."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    async def sleep(self, ms: int) -> None:
        await asyncio.sleep(max(0, ms) / 1000)


def to_datetime(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


def format_epoch_ms(epoch_ms: int) -> str:
    """ISO-8601 rendering with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    return to_datetime(epoch_ms).strftime("%Y-%m-%dT%H:%M:%S.") + f"{epoch_ms % 1000:03d}Z"
