"""
Cycle counter and endpoint refresh trigger.
"""

from uptime_goat.models.core import CycleState

DEFAULT_REFRESH_EVERY = 10


class CycleCounter:
    """
    Counts completed cycles of this process and says when to refresh endpoints.

    The count starts at zero on every process start, independent of any
    continuation of the target time.
    """

    def __init__(self, refresh_every: int = DEFAULT_REFRESH_EVERY):
        if refresh_every < 1:
            raise ValueError(f"refresh_every must be at least 1: {refresh_every}")
        self.refresh_every = refresh_every
        self.state = CycleState()

    @property
    def cycle_count(self) -> int:
        return self.state.cycle_count

    def record_cycle(self, extra_delay_pending: bool = False) -> bool:
        """
        Count one completed cycle.

        Returns:
            True if an endpoint refresh is due after this cycle
        """
        self.state.cycle_count += 1
        self.state.extra_delay_pending = extra_delay_pending
        return self.refresh_due()

    def refresh_due(self) -> bool:
        count = self.state.cycle_count
        return count > 0 and count % self.refresh_every == 0
