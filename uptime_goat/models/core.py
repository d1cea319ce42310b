"""
Core data models for the uptime goat service.
"""

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Iterator, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class EndpointSet:
    """
    Immutable mapping of target name to report URL.

    A new instance replaces the previous one on every successful refresh,
    so a reference held by a running dispatch never changes under it.
    """
    endpoints: Mapping[str, str]
    fetched_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        object.__setattr__(self, "endpoints", MappingProxyType(dict(self.endpoints)))

    def __len__(self) -> int:
        return len(self.endpoints)

    def __bool__(self) -> bool:
        return len(self.endpoints) > 0

    def __iter__(self) -> Iterator[str]:
        return iter(self.endpoints)

    def __contains__(self, name: object) -> bool:
        return name in self.endpoints

    def items(self) -> List[Tuple[str, str]]:
        return list(self.endpoints.items())

    def names(self) -> List[str]:
        return list(self.endpoints.keys())

    def to_dict(self) -> dict:
        return dict(self.endpoints)


@dataclass
class ReportOutcome:
    """Result of one report exchange with one target."""
    target_name: str
    success: bool
    deviation_ms: Optional[Union[int, float]] = None
    miner_name: Optional[str] = None
    ping_ms: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, target_name: str, error: str) -> "ReportOutcome":
        return cls(target_name=target_name, success=False, error=error)


@dataclass
class CycleState:
    """In-memory cycle bookkeeping; never persisted."""
    cycle_count: int = 0
    extra_delay_pending: bool = False


@dataclass
class CycleResult:
    """Result of one complete report cycle."""
    cycle_number: int
    outcomes: List[ReportOutcome]
    extra_delay_ms: int
    target_time_ms: int
    started_at: datetime
    refresh_attempted: bool = False
    refresh_succeeded: Optional[bool] = None
    error: Optional[str] = None

    @property
    def successful_reports(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed_reports(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)

    def to_dict(self) -> dict:
        return {
            "cycle_number": self.cycle_number,
            "started_at": self.started_at.isoformat(),
            "targets": len(self.outcomes),
            "successful_reports": self.successful_reports,
            "failed_reports": self.failed_reports,
            "extra_delay_ms": self.extra_delay_ms,
            "target_time_ms": self.target_time_ms,
            "refresh_attempted": self.refresh_attempted,
            "refresh_succeeded": self.refresh_succeeded,
            "error": self.error,
        }
