"""
Cycle outcome analysis.
"""

from .deviation import DeviationHeuristic, needs_extra_delay, collect_deviations

__all__ = [
    "DeviationHeuristic",
    "needs_extra_delay",
    "collect_deviations"
]
