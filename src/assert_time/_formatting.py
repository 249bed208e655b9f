"""Human-readable rendering of time points and durations for failure messages."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def format_time(value: datetime) -> str:
    """Render a time point as ISO-8601 with microseconds.

    Aware values are converted to UTC and get a ``Z`` suffix, e.g.
    ``2024-05-01T12:00:00.050000Z``. Naive values are rendered unchanged.
    """
    if value.tzinfo is None:
        return value.isoformat(timespec="microseconds")
    utc = value.astimezone(timezone.utc).replace(tzinfo=None)
    return f"{utc.isoformat(timespec='microseconds')}Z"


def format_duration(value: timedelta) -> str:
    """Render a duration as ``[-][D.]HH:MM:SS.ffffff``.

    Negative spans get a leading ``-`` instead of the ``-1 day, 23:59:59``
    form ``str(timedelta)`` produces.
    """
    sign = "-" if value < timedelta(0) else ""
    value = abs(value)
    hours, remainder = divmod(value.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)
    days = f"{value.days}." if value.days else ""
    return f"{sign}{days}{hours:02d}:{minutes:02d}:{seconds:02d}.{value.microseconds:06d}"
