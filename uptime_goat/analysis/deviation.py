"""
Deviation heuristic: decides whether the next interval gets one extra second.

When every reachable target reports a deviation above one second, but at
least one of them is still below two seconds, the clock is marginally off
and a one-second cooldown brings the next report back into range. The
thresholds are a fixed policy.
"""

import logging
from typing import Iterable, List, Sequence

from uptime_goat.models.core import ReportOutcome

logger = logging.getLogger(__name__)

HIGH_DEVIATION_MS = 1000
MARGINAL_DEVIATION_MS = 2000
EXTRA_DELAY_MS = 1000


def collect_deviations(outcomes: Iterable[ReportOutcome]) -> List[float]:
    """Deviations of successful outcomes that carry one."""
    return [
        outcome.deviation_ms
        for outcome in outcomes
        if outcome.success and outcome.deviation_ms is not None
    ]


def needs_extra_delay(deviations: Sequence[float]) -> bool:
    """
    True iff all |d| > 1000 and at least one |d| < 2000.

    An empty sequence never triggers.
    """
    if not deviations:
        return False

    all_high = all(abs(d) > HIGH_DEVIATION_MS for d in deviations)
    some_marginal = any(abs(d) < MARGINAL_DEVIATION_MS for d in deviations)
    return all_high and some_marginal


class DeviationHeuristic:
    """Maps a cycle's outcomes to the extra delay for the next interval."""

    extra_delay_ms = EXTRA_DELAY_MS

    def evaluate(self, outcomes: Iterable[ReportOutcome]) -> int:
        """
        Args:
            outcomes: All outcomes of the cycle, failed ones included

        Returns:
            0 or EXTRA_DELAY_MS
        """
        deviations = collect_deviations(outcomes)

        if needs_extra_delay(deviations):
            logger.info(
                "⚠️  All deviations > 1000ms with at least one < 2000ms, "
                "adding 1000ms extra delay to next cycle"
            )
            return self.extra_delay_ms

        return 0
