"""
Test fixtures and configuration for shared.
"""

import logging

import pytest

from shared.reporter import SystemReporter


class FakeClock:
    """Manually advanced time source (epoch seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Provide a fake clock starting at a fixed epoch."""
    return FakeClock()


@pytest.fixture
def reporter() -> SystemReporter:
    """Provide a quiet stdout-only reporter."""
    return SystemReporter(name="shared-test", level=logging.WARNING, verbose=0)
