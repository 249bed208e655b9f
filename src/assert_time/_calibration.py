"""Empirical calibration of run-after jitter.

A calibration batch launches many short probes at once. Each probe asks the
execution context to run it after a small delay and records how much later
than requested it actually ran. The maximum overrun over the whole batch is
the jitter bound tests can size their tolerances from.

The batch is deliberately large, so the process-wide result is computed at
most once and shared by every caller, including callers that arrive while the
first batch is still running.
"""

from __future__ import annotations

import enum
import functools
import threading
from collections.abc import Callable
from datetime import timedelta

from assert_time._config import CalibrationConfig, ConfigError, _report_calibration, load_config
from assert_time._formatting import format_duration
from assert_time._scheduling import ExecutionContext, WorkerPoolContext


class CalibrationError(RuntimeError):
    """The delay primitive or the clock failed during calibration."""


class CalibrationState(enum.Enum):
    """Lifecycle of a compute-once calibration."""

    UNCOMPUTED = "uncomputed"
    COMPUTING = "computing"
    COMPUTED = "computed"
    FAILED = "failed"


class _ProbeBatch:
    """Fan-in for probe results.

    Folds overruns with max as they arrive and signals ``done`` after the last
    expected sample or the first failure, whichever comes first.
    """

    def __init__(self, expected: int) -> None:
        self._remaining = expected
        self._max: timedelta | None = None
        self._error: BaseException | None = None
        self._lock = threading.Lock()
        self.done = threading.Event()

    def add(self, overrun: timedelta) -> None:
        with self._lock:
            if self.done.is_set():
                return
            # Samples can be negative, so the fold starts from the first one
            self._max = overrun if self._max is None else max(self._max, overrun)
            self._remaining -= 1
            if self._remaining == 0:
                self.done.set()

    def fail(self, error: BaseException) -> None:
        with self._lock:
            if self.done.is_set():
                return
            self._error = error
            self.done.set()

    def result(self) -> timedelta:
        with self._lock:
            if self._error is not None:
                raise CalibrationError(f"probe failed: {self._error!r}") from self._error
            if self._max is None or self._remaining:
                raise CalibrationError("calibration finished without every probe reporting")
            return self._max


def _probe(context: ExecutionContext, delay: timedelta, batch: _ProbeBatch) -> None:
    try:
        start = context.now()

        def finish() -> None:
            try:
                batch.add(context.now() - start - delay)
            except Exception as e:
                batch.fail(e)

        context.run_after(delay, finish)
    except Exception as e:
        batch.fail(e)


def measure_max_overrun(
    context: ExecutionContext, probe_delay: timedelta, probe_count: int
) -> timedelta:
    """Run one calibration batch and return the maximum observed overrun.

    Args:
        context: Where the probes run and how they wait.
        probe_delay: Delay each probe requests.
        probe_count: Number of concurrent probes.

    Returns:
        The largest ``actual delay - probe_delay`` seen. May be negative if
        every probe completed early (clock adjustments, virtual schedulers).

    Raises:
        ValueError: If probe_count is not positive.
        CalibrationError: If any probe, or the context itself, failed.
    """
    if probe_count < 1:
        raise ValueError(f"probe_count must be positive, got {probe_count}")

    batch = _ProbeBatch(probe_count)
    try:
        for _ in range(probe_count):
            context.submit(functools.partial(_probe, context, probe_delay, batch))
        context.wait_until(batch.done)
    except Exception as e:
        raise CalibrationError(f"calibration batch could not complete: {e}") from e

    return batch.result()


class JitterCalibration:
    """Compute-once cell for a jitter bound.

    ``get`` runs ``compute`` on first demand. Callers arriving while it runs
    block and then see the same value; a failure is kept and raised to every
    caller without retrying.
    """

    def __init__(self, compute: Callable[[], timedelta]) -> None:
        self._compute = compute
        self._lock = threading.Lock()
        self._state = CalibrationState.UNCOMPUTED
        self._value: timedelta | None = None
        self._error: CalibrationError | None = None

    @property
    def state(self) -> CalibrationState:
        return self._state

    def is_calibrated(self) -> bool:
        return self._state is CalibrationState.COMPUTED

    def get(self) -> timedelta:
        # Fast path: no lock once published
        if self._state is CalibrationState.COMPUTED:
            return self._value  # type: ignore[return-value]

        with self._lock:
            if self._state is CalibrationState.UNCOMPUTED:
                self._state = CalibrationState.COMPUTING
                try:
                    value = self._compute()
                except CalibrationError as e:
                    self._error = e
                    self._state = CalibrationState.FAILED
                except Exception as e:
                    error = CalibrationError(f"calibration failed: {e!r}")
                    error.__cause__ = e
                    self._error = error
                    self._state = CalibrationState.FAILED
                except BaseException:
                    # Interrupted, not failed: the next caller computes again
                    self._state = CalibrationState.UNCOMPUTED
                    raise
                else:
                    self._value = value
                    self._state = CalibrationState.COMPUTED

            if self._state is CalibrationState.COMPUTED:
                return self._value  # type: ignore[return-value]
            if self._error is None:
                raise CalibrationError(f"calibration is {self._state.value}, no value available")
            # Fresh instance per caller so tracebacks do not accumulate
            raise CalibrationError(*self._error.args) from self._error.__cause__


# ============================================================================
# Process-wide default calibration
# ============================================================================

_default_config: CalibrationConfig | None = None


def _calibrate_default() -> timedelta:
    global _default_config

    try:
        config = load_config()
    except ConfigError as e:
        raise CalibrationError(f"invalid calibration configuration: {e}") from e

    with WorkerPoolContext(max_workers=config.max_workers) as context:
        max_jitter = measure_max_overrun(context, config.probe_delay, config.probe_count)

    _default_config = config
    _report_calibration(config, format_duration(max_jitter))
    return max_jitter


def _derive_safe_allowed_time_error() -> timedelta:
    max_jitter = _max_run_after_jitter.get()
    if _default_config is None:
        raise CalibrationError("calibration finished without recording its configuration")
    # Not clamped: a negative bound stays negative after scaling
    return max_jitter * _default_config.safety_factor


_max_run_after_jitter = JitterCalibration(_calibrate_default)
_safe_allowed_time_error = JitterCalibration(_derive_safe_allowed_time_error)


def get_max_run_after_jitter() -> timedelta:
    """Return the calibrated worst-case run-after overrun for this process.

    The first call runs the calibration batch on a worker pool; every later or
    concurrent call returns the same cached value.

    Raises:
        CalibrationError: If the calibration failed (now or on an earlier call).
    """
    return _max_run_after_jitter.get()


def get_safe_allowed_time_error() -> timedelta:
    """Return the calibrated jitter scaled by the configured safety factor.

    This is the default tolerance for asserting on times produced by code that
    waits with the run-after primitive.
    """
    return _safe_allowed_time_error.get()


def is_calibrated() -> bool:
    """Check whether the process-wide calibration has completed."""
    return _max_run_after_jitter.is_calibrated()


def get_calibration_state() -> CalibrationState:
    """Return where the process-wide calibration is in its lifecycle."""
    return _max_run_after_jitter.state


def get_max_run_after_jitter_on(
    scheduler: ExecutionContext, config: CalibrationConfig | None = None
) -> timedelta:
    """Calibrate jitter for a specific scheduler.

    Runs every probe, delay and completion through ``scheduler``. Unlike the
    default calibration the result is not cached.

    Args:
        scheduler: The execution context to measure.
        config: Batch parameters. Read from the environment when omitted.

    Raises:
        CalibrationError: If configuration is invalid or any probe failed.
    """
    if config is None:
        try:
            config = load_config()
        except ConfigError as e:
            raise CalibrationError(f"invalid calibration configuration: {e}") from e

    return measure_max_overrun(scheduler, config.probe_delay, config.probe_count)
