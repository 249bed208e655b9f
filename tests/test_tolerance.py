"""Tests for timestamp tolerance checks."""

from __future__ import annotations

import unittest
from datetime import datetime, timedelta

import pytest

from assert_time import (
    Side,
    ToleranceViolation,
    ToleranceWindow,
    assert_time_with_allowed_error,
    assert_time_with_allowed_error_from_both_sides,
    assert_time_with_allowed_later_error,
    check_within_tolerance,
    reporter_for_testcase,
)


class TestToleranceWindow:
    """Tests for ToleranceWindow construction."""

    def test_later_only_has_no_earlier_slack(self, ms: timedelta) -> None:
        window = ToleranceWindow.later_only(5 * ms)
        assert window.earlier == timedelta(0)
        assert window.later == 5 * ms

    def test_symmetric_uses_same_allowance(self, ms: timedelta) -> None:
        window = ToleranceWindow.symmetric(7 * ms)
        assert window.earlier == window.later == 7 * ms

    def test_default_is_exact(self) -> None:
        window = ToleranceWindow()
        assert window.earlier == window.later == timedelta(0)

    @pytest.mark.parametrize("side", ["earlier", "later"])
    def test_negative_allowance_rejected(self, side: str) -> None:
        """Allowances must be non-negative."""
        with pytest.raises(ValueError) as exc_info:
            ToleranceWindow(**{side: timedelta(milliseconds=-1)})
        assert side in str(exc_info.value)

    def test_window_is_frozen(self, ms: timedelta) -> None:
        window = ToleranceWindow.symmetric(ms)
        with pytest.raises(AttributeError):
            window.later = 2 * ms  # type: ignore[misc]


class TestScenarios:
    """End-to-end scenarios for the tolerance check."""

    def test_exact_match_with_zero_tolerance(self, expected_time: datetime) -> None:
        """Scenario 1: identical times pass with no tolerance at all."""
        assert_time_with_allowed_error(expected_time, expected_time, timedelta(0), timedelta(0))

    def test_late_within_allowance(self, expected_time: datetime, ms: timedelta) -> None:
        """Scenario 2a: 50ms late with 100ms later allowance passes."""
        assert_time_with_allowed_later_error(expected_time, expected_time + 50 * ms, 100 * ms)

    def test_late_beyond_allowance(self, expected_time: datetime, ms: timedelta) -> None:
        """Scenario 2b: 50ms late with 10ms later allowance fails on the later side."""
        with pytest.raises(ToleranceViolation) as exc_info:
            assert_time_with_allowed_later_error(expected_time, expected_time + 50 * ms, 10 * ms)

        violation = exc_info.value
        assert violation.side is Side.LATER
        assert violation.allowance == 10 * ms
        assert "expected + allowed_later >= actual" in str(violation)

    def test_early_beyond_allowance(self, expected_time: datetime, ms: timedelta) -> None:
        """Scenario 3a: 50ms early with 10ms earlier allowance fails on the earlier side."""
        with pytest.raises(ToleranceViolation) as exc_info:
            assert_time_with_allowed_error(expected_time, expected_time - 50 * ms, 10 * ms, timedelta(0))

        violation = exc_info.value
        assert violation.side is Side.EARLIER
        assert "expected - allowed_earlier <= actual" in str(violation)

    def test_early_within_allowance(self, expected_time: datetime, ms: timedelta) -> None:
        """Scenario 3b: 50ms early with 100ms earlier allowance passes."""
        assert_time_with_allowed_error(expected_time, expected_time - 50 * ms, 100 * ms, timedelta(0))


class TestBoundaries:
    """The window edges are inclusive."""

    def test_exactly_at_later_edge_passes(self, expected_time: datetime, ms: timedelta) -> None:
        assert check_within_tolerance(expected_time, expected_time + 10 * ms, ToleranceWindow.later_only(10 * ms))

    def test_exactly_at_earlier_edge_passes(self, expected_time: datetime, ms: timedelta) -> None:
        assert check_within_tolerance(expected_time, expected_time - 10 * ms, ToleranceWindow.symmetric(10 * ms))

    def test_one_microsecond_past_later_edge_fails(self, expected_time: datetime, ms: timedelta) -> None:
        actual = expected_time + 10 * ms + timedelta(microseconds=1)
        with pytest.raises(ToleranceViolation) as exc_info:
            check_within_tolerance(expected_time, actual, ToleranceWindow.later_only(10 * ms))
        assert exc_info.value.side is Side.LATER

    def test_later_only_rejects_any_early_arrival(self, expected_time: datetime, ms: timedelta) -> None:
        """One-sided form has zero tolerance for running early."""
        actual = expected_time - timedelta(microseconds=1)
        with pytest.raises(ToleranceViolation) as exc_info:
            assert_time_with_allowed_later_error(expected_time, actual, 1000 * ms)
        assert exc_info.value.side is Side.EARLIER


class TestSymmetricForm:
    """Symmetric form behaves like the general form with equal allowances."""

    @pytest.mark.parametrize("offset_ms", [-30, -20, -1, 0, 1, 20, 30])
    def test_matches_general_form(
        self, expected_time: datetime, ms: timedelta, offset_ms: int, collecting_reporter
    ) -> None:
        actual = expected_time + offset_ms * ms
        general = check_within_tolerance(
            expected_time, actual, ToleranceWindow(earlier=20 * ms, later=20 * ms), collecting_reporter
        )
        general_sides = [v.side for v in collecting_reporter.violations]
        collecting_reporter.checked.clear()

        assert_time_with_allowed_error_from_both_sides(expected_time, actual, 20 * ms, collecting_reporter)
        symmetric_sides = [v.side for v in collecting_reporter.violations]

        assert symmetric_sides == general_sides
        assert general is (abs(offset_ms) <= 20)


class TestReporters:
    """Tests for injected failure reporters."""

    def test_reporter_sees_both_edges_in_order(
        self, expected_time: datetime, ms: timedelta, collecting_reporter
    ) -> None:
        passed = check_within_tolerance(
            expected_time, expected_time, ToleranceWindow.symmetric(ms), collecting_reporter
        )
        assert passed is True
        assert [(c, v.side) for c, v in collecting_reporter.checked] == [
            (True, Side.EARLIER),
            (True, Side.LATER),
        ]

    def test_non_raising_reporter_gets_false_result(
        self, expected_time: datetime, ms: timedelta, collecting_reporter
    ) -> None:
        passed = check_within_tolerance(
            expected_time, expected_time + 5 * ms, ToleranceWindow.later_only(ms), collecting_reporter
        )
        assert passed is False
        assert [v.side for v in collecting_reporter.violations] == [Side.LATER]

    def test_violation_is_assertion_error(self, expected_time: datetime, ms: timedelta) -> None:
        """Violations surface as ordinary test failures."""
        with pytest.raises(AssertionError):
            assert_time_with_allowed_later_error(expected_time, expected_time + 2 * ms, ms)

    def test_testcase_reporter_uses_fail(self, expected_time: datetime, ms: timedelta) -> None:
        class Case(unittest.TestCase):
            def runTest(self) -> None:
                assert_time_with_allowed_later_error(
                    expected_time, expected_time + 2 * ms, ms, reporter_for_testcase(self)
                )

        result = unittest.TestResult()
        Case().run(result)

        assert len(result.failures) == 1
        assert "actual time is later than allowed" in result.failures[0][1]


class TestViolationMessage:
    """Failure messages embed symbolic and concrete relations."""

    def test_later_message(self, expected_time: datetime, ms: timedelta) -> None:
        violation = ToleranceViolation(Side.LATER, expected_time, expected_time + 50 * ms, 10 * ms)
        assert str(violation).splitlines() == [
            "actual time is later than allowed",
            "expected + allowed_later >= actual",
            "2024-05-01T12:00:00.000000Z + 00:00:00.010000 >= 2024-05-01T12:00:00.050000Z",
        ]

    def test_earlier_message(self, expected_time: datetime, ms: timedelta) -> None:
        violation = ToleranceViolation(Side.EARLIER, expected_time, expected_time - 50 * ms, 10 * ms)
        assert str(violation).splitlines() == [
            "actual time is earlier than allowed",
            "expected - allowed_earlier <= actual",
            "2024-05-01T12:00:00.000000Z - 00:00:00.010000 <= 2024-05-01T11:59:59.950000Z",
        ]

    def test_violation_carries_values(self, expected_time: datetime, ms: timedelta) -> None:
        actual = expected_time + 3 * ms
        violation = ToleranceViolation(Side.LATER, expected_time, actual, ms)
        assert violation.expected == expected_time
        assert violation.actual == actual
        assert violation.allowance == ms
