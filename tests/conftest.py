"""Pytest configuration and fixtures for assert-time tests."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

import pytest

from assert_time import ToleranceViolation


def pytest_configure(config: pytest.Config) -> None:
    # Keep the process-wide calibration cheap under test
    os.environ.setdefault("ASSERT_TIME_PROBE_COUNT", "2000")


class CollectingReporter:
    """Failure reporter that records violations instead of raising."""

    def __init__(self) -> None:
        self.checked: list[tuple[bool, ToleranceViolation]] = []

    def __call__(self, condition: bool, violation: ToleranceViolation) -> None:
        self.checked.append((condition, violation))

    @property
    def violations(self) -> list[ToleranceViolation]:
        return [violation for condition, violation in self.checked if not condition]


@pytest.fixture
def expected_time() -> datetime:
    """A fixed UTC time point to compare against."""
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def ms() -> timedelta:
    """One millisecond."""
    return timedelta(milliseconds=1)


@pytest.fixture
def collecting_reporter() -> CollectingReporter:
    return CollectingReporter()
