"""
Clocks and tick sources.

Playback only needs "milliseconds since the last tick". This module
supplies that from:

- ``ThreadTickSource``: a background thread ticking at a fixed rate
  (interactive playback).
- ``PeriodicScheduler``: a cooperative single-threaded loop running
  several fixed-interval tasks (capture: one refresh task, one frame
  sampling task).

Both read time from a ``Clock``. ``SystemClock`` is wall time;
``ManualClock`` is virtual time, so a scheduler on a manual clock runs
as fast as the callbacks allow and is fully deterministic.
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Optional, Protocol

from routeanim.config import settings

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> float:
        """Current time in seconds."""
        ...

    def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    """Monotonic wall-clock time."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class ManualClock:
    """Virtual clock that only moves when told to; sleeping advances it."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        with self._lock:
            self._now += seconds

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.advance(seconds)


class ThreadTickSource:
    """
    Background thread that calls ``callback(delta_ms)`` at a fixed rate.

    The delta is the measured time since the previous call, so a stalled
    thread catches up in one larger step instead of slowing playback.
    """

    def __init__(
        self,
        callback: Callable[[float], None],
        rate_hz: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self.callback = callback
        self.rate_hz = rate_hz or settings.refresh_hz
        self.clock = clock or SystemClock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start ticking. Does nothing if already running."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._tick_loop, name="tick-source", daemon=True)
        self._thread.start()
        logger.debug(f"Tick source started at {self.rate_hz} Hz")

    def stop(self) -> None:
        """Stop ticking and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None

    def _tick_loop(self) -> None:
        interval = 1.0 / self.rate_hz
        last = self.clock.now()

        while not self._stop_event.wait(interval):
            now = self.clock.now()
            try:
                self.callback((now - last) * 1000.0)
            except Exception as e:
                logger.warning(f"Tick callback error: {e}")
            last = now


class PeriodicTask:
    """Handle for a task registered with a ``PeriodicScheduler``."""

    def __init__(
        self,
        name: str,
        interval: Optional[float],
        callback: Callable[[float], None],
        due: float,
        seq: int = 0,
    ):
        self.name = name
        self.interval = interval
        self.callback = callback
        self.due = due
        self.seq = seq
        self.runs = 0
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __repr__(self) -> str:
        return f"PeriodicTask({self.name!r}, interval={self.interval}, runs={self.runs})"


class PeriodicScheduler:
    """
    Cooperative single-threaded scheduler.

    Tasks run one at a time on the thread that calls ``run()``; each
    callback receives the clock time it was started at. Tasks due at the
    same moment run in registration order. Callback exceptions propagate
    out of ``run()``.

    Usage:
        scheduler = PeriodicScheduler(ManualClock())
        scheduler.every(1 / 60, refresh)
        scheduler.every(1 / 30, capture)
        scheduler.run()
    """

    def __init__(self, clock: Optional[Clock] = None):
        self.clock = clock or SystemClock()
        self._queue: List[tuple] = []
        self._seq = itertools.count()
        self._stopped = False

    def _push(self, task: PeriodicTask) -> None:
        heapq.heappush(self._queue, (task.due, task.seq, task))

    def every(self, interval: float, callback: Callable[[float], None], name: str = "") -> PeriodicTask:
        """Run ``callback`` every ``interval`` seconds, first after one interval."""
        if interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval}")
        task = PeriodicTask(
            name or callback.__name__, interval, callback, self.clock.now() + interval, next(self._seq)
        )
        self._push(task)
        return task

    def call_later(self, delay: float, callback: Callable[[float], None], name: str = "") -> PeriodicTask:
        """Run ``callback`` once after ``delay`` seconds."""
        task = PeriodicTask(
            name or callback.__name__, None, callback, self.clock.now() + max(delay, 0.0), next(self._seq)
        )
        self._push(task)
        return task

    def stop(self) -> None:
        """Make ``run()`` return after the current callback."""
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    def run(self) -> None:
        """Run tasks until ``stop()`` is called or no task is left."""
        while not self._stopped:
            while self._queue and self._queue[0][2].cancelled:
                heapq.heappop(self._queue)
            if not self._queue:
                break

            due, _, task = heapq.heappop(self._queue)
            wait = due - self.clock.now()
            if wait > 0:
                self.clock.sleep(wait)
            if task.cancelled:
                continue

            now = self.clock.now()
            task.runs += 1
            task.callback(now)

            if task.interval is not None and not task.cancelled:
                task.due = due + task.interval
                if task.due < now - task.interval:
                    # fell far behind wall time; skip missed runs
                    task.due = now + task.interval
                self._push(task)

        self._queue = [entry for entry in self._queue if not entry[2].cancelled]
        heapq.heapify(self._queue)
