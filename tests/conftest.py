# === MODULE PURPOSE ===
# Pytest configuration and shared fixtures for tests.

import pytest

from src.simulation.manager import SimulationOrchestrator
from src.simulation.noise import NullJitter, RandomJitter


class FakeWallClock:
    """Controllable monotonic seconds source."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def wall() -> FakeWallClock:
    """Wall clock that only moves when the test advances it."""
    return FakeWallClock()


@pytest.fixture
def seeded_jitter() -> RandomJitter:
    """Reproducible order-book jitter."""
    return RandomJitter(seed=42)


@pytest.fixture
def orchestrator(wall: FakeWallClock) -> SimulationOrchestrator:
    """Orchestrator on the fake wall clock with jitter disabled."""
    return SimulationOrchestrator(wall_clock=wall, jitter=NullJitter())
