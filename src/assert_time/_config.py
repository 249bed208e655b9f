"""Configuration parsing from environment variables.

Environment Variables:
    ASSERT_TIME_PROBE_COUNT: Probes per calibration batch (default: 20000)
    ASSERT_TIME_PROBE_DELAY_US: Requested delay per probe in microseconds (default: 1000)
    ASSERT_TIME_SAFETY_FACTOR: Multiplier applied to the calibrated jitter (default: 2)
    ASSERT_TIME_MAX_WORKERS: Worker pool size, 0 = executor default (default: 0)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_PROBE_COUNT = 20_000
DEFAULT_PROBE_DELAY_US = 1_000
DEFAULT_SAFETY_FACTOR = 2

# Below this many probes the maximum is unlikely to catch a real stall
STATISTICALLY_SAFE_PROBE_COUNT = 1_000


@dataclass(frozen=True, slots=True)
class CalibrationConfig:
    """Jitter calibration configuration."""

    probe_count: int = DEFAULT_PROBE_COUNT
    """Number of concurrent probes in one calibration batch."""

    probe_delay_us: int = DEFAULT_PROBE_DELAY_US
    """Delay each probe requests from the run-after primitive, in microseconds."""

    safety_factor: int = DEFAULT_SAFETY_FACTOR
    """Multiplier turning the raw jitter bound into a safe allowed time error."""

    max_workers: int | None = None
    """Worker pool size for the default mode, or None for the executor default."""

    @property
    def probe_delay(self) -> timedelta:
        return timedelta(microseconds=self.probe_delay_us)


class ConfigError(Exception):
    """Error in configuration."""


def _parse_int(name: str, default: int, min_value: int = 0) -> int:
    """Parse an integer environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.
        min_value: Minimum allowed value.

    Returns:
        The parsed integer.

    Raises:
        ConfigError: If the value is invalid.
    """
    value_str = os.environ.get(name)
    if value_str is None or not value_str.strip():
        return default

    try:
        value = int(value_str)
    except ValueError:
        raise ConfigError(f"{name}: invalid integer '{value_str}'") from None

    if value < min_value:
        raise ConfigError(f"{name}: value {value} is below minimum {min_value}")

    return value


def load_config() -> CalibrationConfig:
    """Load calibration configuration from environment variables.

    Returns:
        A CalibrationConfig with the parsed configuration.

    Raises:
        ConfigError: If configuration is invalid.
    """
    probe_count = _parse_int("ASSERT_TIME_PROBE_COUNT", default=DEFAULT_PROBE_COUNT, min_value=1)
    probe_delay_us = _parse_int(
        "ASSERT_TIME_PROBE_DELAY_US", default=DEFAULT_PROBE_DELAY_US, min_value=1
    )
    safety_factor = _parse_int("ASSERT_TIME_SAFETY_FACTOR", default=DEFAULT_SAFETY_FACTOR, min_value=1)
    max_workers = _parse_int("ASSERT_TIME_MAX_WORKERS", default=0, min_value=0)

    if probe_count < STATISTICALLY_SAFE_PROBE_COUNT:
        _warn(
            f"ASSERT_TIME_PROBE_COUNT: {probe_count} probes < {STATISTICALLY_SAFE_PROBE_COUNT}\n"
            f"  The calibrated jitter may underestimate the worst case on this host."
        )

    return CalibrationConfig(
        probe_count=probe_count,
        probe_delay_us=probe_delay_us,
        safety_factor=safety_factor,
        max_workers=max_workers or None,
    )


def _warn(message: str) -> None:
    """Print a warning to stderr."""
    print(f"assert_time: WARNING: {message}", file=sys.stderr)


def _report_calibration(config: CalibrationConfig, max_jitter: str) -> None:
    """Print calibration summary to stderr."""
    print(
        f"assert_time: calibrated max run-after jitter: {max_jitter} "
        f"over {config.probe_count} probes of {config.probe_delay_us} us",
        file=sys.stderr,
    )
    print(f"assert_time: safety factor: {config.safety_factor}", file=sys.stderr)
