"""The run-after delay primitive and the execution contexts probes run on.

Calibration is written once against ExecutionContext. Two implementations:
- WorkerPoolContext: the ambient thread pool, a timer queue and the real clock (default mode)
- VirtualScheduler: a deterministic virtual clock driven by the caller
"""

from __future__ import annotations

import functools
import heapq
import itertools
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

Action = Callable[[], None]
Clock = Callable[[], datetime]

_ZERO = timedelta(0)


def utc_now() -> datetime:
    """Current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


def run_after(duration: timedelta, cancel: threading.Event | None = None) -> bool:
    """Block the calling thread for at least ``duration``.

    Args:
        duration: How long to wait. Negative durations are treated as zero.
        cancel: Optional signal that ends the wait early when set.

    Returns:
        True if the full delay elapsed, False if cancelled first.
    """
    seconds = max(duration.total_seconds(), 0.0)
    if cancel is None:
        time.sleep(seconds)
        return True
    return not cancel.wait(seconds)


@runtime_checkable
class ExecutionContext(Protocol):
    """Where probes run and how they wait."""

    def now(self) -> datetime:
        """Return the context's current time."""

    def submit(self, action: Action) -> None:
        """Start ``action`` concurrently."""

    def run_after(self, duration: timedelta, action: Action) -> None:
        """Invoke ``action`` once ``duration`` has passed."""

    def wait_until(self, done: threading.Event) -> None:
        """Return once ``done`` is set, driving the context if it needs it."""


class TimerQueue:
    """One thread that hands actions off once their delay has elapsed.

    Any number of delays can be pending at once without holding a thread
    each. Actions run on the timer thread, so they should only hand work off
    (e.g. submit it to a pool). Due times use the monotonic clock and an
    action never fires before its delay has passed.
    """

    def __init__(self, name: str = "assert_time-timer") -> None:
        self._queue: list[tuple[float, int, Action]] = []
        self._sequence = itertools.count()
        self._condition = threading.Condition()
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def pending(self) -> int:
        """Number of delays that have not fired yet."""
        with self._condition:
            return len(self._queue)

    def call_later(self, duration: timedelta, action: Action) -> None:
        """Invoke ``action`` on the timer thread once ``duration`` has passed.

        Raises:
            RuntimeError: If the queue has been closed.
        """
        due = time.monotonic() + max(duration.total_seconds(), 0.0)
        with self._condition:
            if self._closed:
                raise RuntimeError("cannot schedule on a closed timer queue")
            heapq.heappush(self._queue, (due, next(self._sequence), action))
            self._condition.notify()

    def close(self) -> None:
        """Drop pending delays and stop the timer thread."""
        with self._condition:
            self._closed = True
            self._queue.clear()
            self._condition.notify()
        self._thread.join()

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._closed:
                    if not self._queue:
                        self._condition.wait()
                        continue
                    remaining = self._queue[0][0] - time.monotonic()
                    if remaining <= 0:
                        break
                    self._condition.wait(remaining)
                if self._closed:
                    return
                _, _, action = heapq.heappop(self._queue)
            action()


class WorkerPoolContext:
    """Probes on a shared thread pool against the real clock.

    ``run_after`` holds no worker while waiting: the delay sits on a timer
    queue and the action is submitted back to the pool when it fires, so every
    probe in a batch is waiting at the same time regardless of pool size.

    Example:
        >>> from assert_time import measure_max_overrun
        >>> with WorkerPoolContext(max_workers=8) as context:
        ...     jitter = measure_max_overrun(context, timedelta(milliseconds=1), 100)
    """

    def __init__(
        self,
        max_workers: int | None = None,
        clock: Clock = utc_now,
        timers: TimerQueue | None = None,
    ) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="assert_time-probe"
        )
        self._clock = clock
        self._timers = timers if timers is not None else TimerQueue()

    def now(self) -> datetime:
        return self._clock()

    def submit(self, action: Action) -> None:
        self._executor.submit(action)

    def run_after(self, duration: timedelta, action: Action) -> None:
        self._timers.call_later(duration, functools.partial(self._executor.submit, action))

    def wait_until(self, done: threading.Event) -> None:
        done.wait()

    def close(self, cancel_pending: bool = False) -> None:
        """Stop the timers, then shut the pool down, waiting for running probes.

        Args:
            cancel_pending: Drop probes that have not started yet.
        """
        # Timers first so nothing is submitted to a shut-down pool
        self._timers.close()
        self._executor.shutdown(wait=True, cancel_futures=cancel_pending)

    def __enter__(self) -> WorkerPoolContext:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close(cancel_pending=exc_type is not None)


class VirtualScheduler:
    """Deterministic scheduler with a virtual clock.

    Actions are queued by due time and run only while the caller drives the
    scheduler through ``wait_until`` or ``advance``. Virtual time never moves
    backwards.

    Parameters
    ----------
    start:
        Virtual time to begin at.
    lateness:
        Added to every ``run_after`` due time. Negative values model delays
        that complete early.
    """

    def __init__(
        self,
        start: datetime = datetime(2000, 1, 1, tzinfo=timezone.utc),
        lateness: timedelta = _ZERO,
    ) -> None:
        self._now = start
        self._lateness = lateness
        self._queue: list[tuple[datetime, int, Action]] = []
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    @property
    def pending(self) -> int:
        """Number of queued actions."""
        with self._lock:
            return len(self._queue)

    def submit(self, action: Action) -> None:
        with self._lock:
            self._push(self._now, action)

    def run_after(self, duration: timedelta, action: Action) -> None:
        with self._lock:
            self._push(self._now + max(duration, _ZERO) + self._lateness, action)

    def wait_until(self, done: threading.Event) -> None:
        """Run queued actions in due order until ``done`` is set.

        Raises:
            RuntimeError: If the queue drains while ``done`` is still unset.
        """
        while not done.is_set():
            action = self._pop(until=None)
            if action is None:
                raise RuntimeError("virtual scheduler drained before completion was signalled")
            action()

    def advance(self, duration: timedelta) -> None:
        """Move virtual time forward by ``duration``, running everything due."""
        with self._lock:
            target = self._now + duration
        while (action := self._pop(until=target)) is not None:
            action()
        with self._lock:
            self._now = max(self._now, target)

    def _push(self, due: datetime, action: Action) -> None:
        heapq.heappush(self._queue, (due, next(self._sequence), action))

    def _pop(self, until: datetime | None) -> Action | None:
        with self._lock:
            if not self._queue:
                return None
            if until is not None and self._queue[0][0] > until:
                return None
            due, _, action = heapq.heappop(self._queue)
            self._now = max(self._now, due)
            return action
