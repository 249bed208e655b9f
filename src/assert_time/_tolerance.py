"""Tolerance checks for measured timestamps.

A check compares an actual time point against an expected one, allowing it to
deviate by a bounded amount on each side:

    expected - allowed_earlier <= actual <= expected + allowed_later

Failures go through an injected reporter so the same checks work under pytest,
unittest, or a harness that only collects violations.

Example:
    >>> from datetime import datetime, timedelta, timezone
    >>> t = datetime(2024, 5, 1, tzinfo=timezone.utc)
    >>> assert_time_with_allowed_later_error(t, t + timedelta(milliseconds=5),
    ...                                      timedelta(milliseconds=10))
"""

from __future__ import annotations

import enum
import unittest
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from assert_time._formatting import format_duration, format_time

_ZERO = timedelta(0)


class Side(enum.Enum):
    """Which edge of a tolerance window was checked."""

    EARLIER = "earlier"
    LATER = "later"


@dataclass(frozen=True, slots=True)
class ToleranceWindow:
    """How far an actual time may deviate from the expected time on each side."""

    earlier: timedelta = _ZERO
    """How much earlier than expected the actual time may be."""

    later: timedelta = _ZERO
    """How much later than expected the actual time may be."""

    def __post_init__(self) -> None:
        if self.earlier < _ZERO:
            raise ValueError(f"earlier allowance must not be negative: {self.earlier!r}")
        if self.later < _ZERO:
            raise ValueError(f"later allowance must not be negative: {self.later!r}")

    @classmethod
    def later_only(cls, later: timedelta) -> ToleranceWindow:
        """Window with no slack for arriving early."""
        return cls(earlier=_ZERO, later=later)

    @classmethod
    def symmetric(cls, allowed: timedelta) -> ToleranceWindow:
        """Window with the same allowance on both sides."""
        return cls(earlier=allowed, later=allowed)


class ToleranceViolation(AssertionError):
    """Actual time fell outside the allowed window.

    The message shows the relation that failed both symbolically and with the
    evaluated values, e.g.::

        actual time is later than allowed
        expected + allowed_later >= actual
        2024-05-01T12:00:00.000000Z + 00:00:00.010000 >= 2024-05-01T12:00:00.050000Z
    """

    def __init__(
        self, side: Side, expected: datetime, actual: datetime, allowance: timedelta
    ) -> None:
        self.side = side
        self.expected = expected
        self.actual = actual
        self.allowance = allowance
        super().__init__(self._describe())

    def _describe(self) -> str:
        expected = format_time(self.expected)
        actual = format_time(self.actual)
        allowance = format_duration(self.allowance)
        if self.side is Side.EARLIER:
            return (
                "actual time is earlier than allowed\n"
                "expected - allowed_earlier <= actual\n"
                f"{expected} - {allowance} <= {actual}"
            )
        return (
            "actual time is later than allowed\n"
            "expected + allowed_later >= actual\n"
            f"{expected} + {allowance} >= {actual}"
        )


FailureReporter = Callable[[bool, ToleranceViolation], None]
"""Signals a test failure when given a false condition."""


def raise_on_failure(condition: bool, violation: ToleranceViolation) -> None:
    """Default reporter: raise the violation if the condition is false."""
    if not condition:
        raise violation


def reporter_for_testcase(testcase: unittest.TestCase) -> FailureReporter:
    """Build a reporter that fails through ``testcase.fail``.

    Uses the test case's ``failureException`` so custom failure types are kept.
    """

    def report(condition: bool, violation: ToleranceViolation) -> None:
        if not condition:
            testcase.fail(str(violation))

    return report


def check_within_tolerance(
    expected: datetime,
    actual: datetime,
    window: ToleranceWindow,
    reporter: FailureReporter = raise_on_failure,
) -> bool:
    """Check that ``actual`` lies inside ``window`` around ``expected``.

    The earlier edge is checked before the later edge. Each edge is handed to
    ``reporter`` with its condition; with the default reporter the first
    failing edge raises ToleranceViolation.

    Returns:
        True if both edges held.
    """
    not_too_early = expected - window.earlier <= actual
    reporter(not_too_early, ToleranceViolation(Side.EARLIER, expected, actual, window.earlier))

    not_too_late = expected + window.later >= actual
    reporter(not_too_late, ToleranceViolation(Side.LATER, expected, actual, window.later))

    return not_too_early and not_too_late


def assert_time_with_allowed_error(
    expected: datetime,
    actual: datetime,
    allowed_earlier: timedelta,
    allowed_later: timedelta,
    reporter: FailureReporter = raise_on_failure,
) -> None:
    """Assert ``expected - allowed_earlier <= actual <= expected + allowed_later``."""
    check_within_tolerance(
        expected, actual, ToleranceWindow(earlier=allowed_earlier, later=allowed_later), reporter
    )


def assert_time_with_allowed_later_error(
    expected: datetime,
    actual: datetime,
    allowed_later: timedelta,
    reporter: FailureReporter = raise_on_failure,
) -> None:
    """Assert ``actual`` is not early and at most ``allowed_later`` late."""
    check_within_tolerance(expected, actual, ToleranceWindow.later_only(allowed_later), reporter)


def assert_time_with_allowed_error_from_both_sides(
    expected: datetime,
    actual: datetime,
    allowed: timedelta,
    reporter: FailureReporter = raise_on_failure,
) -> None:
    check_within_tolerance(expected, actual, ToleranceWindow.symmetric(allowed), reporter)
