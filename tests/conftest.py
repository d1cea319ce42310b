"""
Pytest configuration and shared fixtures.
"""

import asyncio

import pytest

from uptime_goat.config.models import ServiceConfig
from uptime_goat.config.validation import get_env_var_mappings
from uptime_goat.models.core import EndpointSet, ReportOutcome
from uptime_goat.scheduling.clock import Clock
from uptime_goat.scheduling.continuation import ContinuationStore

VALID_GOAT_ID = "0123456789abcdef0123456789abcdef"
VALID_GOAT_KEY = "fedcba9876543210fedcba9876543210"

# 2023-11-14T22:13:20Z; far enough in the past that scheduler jobs fire at once
FAKE_EPOCH_MS = 1_700_000_000_000


class FakeClock(Clock):
    """Virtual clock whose sleep advances time instead of waiting."""

    def __init__(self, start_ms: int = FAKE_EPOCH_MS):
        self.now = start_ms
        self.sleeps = []

    def now_ms(self) -> int:
        return self.now

    async def sleep(self, ms: int) -> None:
        self.sleeps.append(ms)
        self.now += max(0, ms)
        await asyncio.sleep(0)

    def advance(self, ms: int) -> None:
        self.now += ms


class BlockingClock(FakeClock):
    """Virtual clock whose sleep never returns on its own."""

    async def sleep(self, ms: int) -> None:
        self.sleeps.append(ms)
        await asyncio.Event().wait()


def _make_outcome(name: str, deviation_ms=None, success: bool = True) -> ReportOutcome:
    if not success:
        return ReportOutcome.failed(name, "Status 500")
    return ReportOutcome(
        target_name=name,
        success=True,
        deviation_ms=deviation_ms,
        miner_name="test-miner",
        ping_ms=12
    )


@pytest.fixture(autouse=True)
def clean_goat_env(monkeypatch):
    """Keep GOAT_* variables of the host environment out of the tests."""
    for env_var in get_env_var_mappings():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def fake_clock():
    """Virtual clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def state_file(tmp_path):
    """Path of a continuation state file inside a temporary directory."""
    return tmp_path / "data" / "last_report_timestamp"


@pytest.fixture
def store(state_file):
    """Continuation store backed by a temporary file."""
    return ContinuationStore(state_file)


@pytest.fixture
def sample_endpoints():
    """Endpoint set with two targets."""
    return EndpointSet({
        "alpha": "http://alpha.example/report",
        "beta": "http://beta.example/report"
    })


@pytest.fixture
def service_config(state_file):
    """Service configuration with valid credentials and a temporary state file."""
    config = ServiceConfig()
    config.credentials.goat_id = VALID_GOAT_ID
    config.credentials.goat_key = VALID_GOAT_KEY
    config.scheduling.state_file = str(state_file)
    return config


@pytest.fixture
def blocking_clock():
    """Virtual clock whose sleeps block until cancelled."""
    return BlockingClock()


@pytest.fixture
def make_outcome():
    """Factory for report outcomes; pass success=False for a failed one."""
    return _make_outcome
