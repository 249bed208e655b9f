"""Assert Time: timestamp tolerance assertions with calibrated jitter.

Tests that check when something happened need a tolerance. Assert Time
measures how late this host's run-after primitive actually fires under load,
once per process, and offers that bound (scaled by a safety factor) as the
tolerance instead of a hand-tuned constant.

Environment Variables:
    ASSERT_TIME_PROBE_COUNT: Probes per calibration batch (default: 20000)
    ASSERT_TIME_PROBE_DELAY_US: Requested delay per probe in microseconds (default: 1000)
    ASSERT_TIME_SAFETY_FACTOR: Multiplier for the safe allowed time error (default: 2)
    ASSERT_TIME_MAX_WORKERS: Worker pool size, 0 = executor default (default: 0)

Example:
    >>> from datetime import timedelta
    >>> import assert_time
    >>> expected = assert_time.utc_now()
    >>> assert_time.run_after(timedelta(milliseconds=10))
    True
    >>> assert_time.assert_time_with_allowed_later_error(
    ...     expected + timedelta(milliseconds=10),
    ...     assert_time.utc_now(),
    ...     assert_time.safe_allowed_time_error,
    ... )
"""

from __future__ import annotations

from datetime import timedelta

from assert_time._calibration import (
    CalibrationError,
    CalibrationState,
    JitterCalibration,
    get_calibration_state,
    get_max_run_after_jitter,
    get_max_run_after_jitter_on,
    get_safe_allowed_time_error,
    is_calibrated,
    measure_max_overrun,
)
from assert_time._config import CalibrationConfig, ConfigError, load_config
from assert_time._formatting import format_duration, format_time
from assert_time._scheduling import (
    ExecutionContext,
    TimerQueue,
    VirtualScheduler,
    WorkerPoolContext,
    run_after,
    utc_now,
)
from assert_time._tolerance import (
    FailureReporter,
    Side,
    ToleranceViolation,
    ToleranceWindow,
    assert_time_with_allowed_error,
    assert_time_with_allowed_error_from_both_sides,
    assert_time_with_allowed_later_error,
    check_within_tolerance,
    raise_on_failure,
    reporter_for_testcase,
)

__version__ = "0.1.0"
__all__ = [
    # Tolerance
    "FailureReporter",
    "Side",
    "ToleranceViolation",
    "ToleranceWindow",
    "assert_time_with_allowed_error",
    "assert_time_with_allowed_error_from_both_sides",
    "assert_time_with_allowed_later_error",
    "check_within_tolerance",
    "raise_on_failure",
    "reporter_for_testcase",
    # Calibration
    "CalibrationError",
    "CalibrationState",
    "JitterCalibration",
    "get_calibration_state",
    "get_max_run_after_jitter",
    "get_max_run_after_jitter_on",
    "get_safe_allowed_time_error",
    "is_calibrated",
    "measure_max_overrun",
    # Config
    "CalibrationConfig",
    "ConfigError",
    "load_config",
    # Scheduling
    "ExecutionContext",
    "TimerQueue",
    "VirtualScheduler",
    "WorkerPoolContext",
    "run_after",
    "utc_now",
    # Formatting
    "format_duration",
    "format_time",
]


# Calibrated values as module attributes, computed on first access
def __getattr__(name: str) -> timedelta:
    if name == "max_run_after_jitter":
        return get_max_run_after_jitter()
    if name == "safe_allowed_time_error":
        return get_safe_allowed_time_error()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
