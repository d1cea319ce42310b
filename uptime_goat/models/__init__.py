"""
Core data models for the uptime goat service.
"""

from .core import EndpointSet, ReportOutcome, CycleState, CycleResult

__all__ = [
    "EndpointSet",
    "ReportOutcome",
    "CycleState",
    "CycleResult",
]
