"""
Failure handling for calls to the routing oracle.

The OSRM server is the only external service Route Animator talks to.
``with_retry`` retries transient network errors with tenacity backoff,
and a ``CircuitBreaker`` stops lookups for a while after repeated
failures so that editing a long route against a dead server does not
stall on every segment. Callers then degrade to straight lines.

Both read time from a ``Clock`` (see ``routeanim.playback.ticker``), so
a ManualClock drives backoff and breaker recovery without real sleeps.
"""
import logging
import functools
import threading
from typing import TypeVar, Callable, Optional
from enum import Enum

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from routeanim.config import settings
from routeanim.playback.ticker import Clock, SystemClock

logger = logging.getLogger(__name__)

T = TypeVar('T')


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised instead of calling the oracle while the breaker is open."""
    pass


class CircuitBreaker:
    """
    Consecutive-failure breaker around routing lookups.

    CLOSED: calls go through; ``failure_threshold`` failures in a row open it.
    OPEN: calls fail fast with CircuitOpenError for ``recovery_s`` seconds.
    HALF_OPEN: one trial call at a time; success closes, failure reopens.

    Usage:
        breaker = CircuitBreaker("osrm", clock=ManualClock())

        @breaker
        def fetch(start, end):
            ...
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 3,
        recovery_s: float = 120.0,
        clock: Optional[Clock] = None,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_s = recovery_s
        self.clock = clock or SystemClock()

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_running = False
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def retry_in(self) -> Optional[float]:
        """Seconds until the breaker lets a trial call through, or None when not open."""
        with self._lock:
            if self._opened_at is None or self._state != CircuitState.OPEN:
                return None
            return max(0.0, self._opened_at + self.recovery_s - self.clock.now())

    def _maybe_half_open(self):
        if self._state == CircuitState.OPEN and self.clock.now() - self._opened_at >= self.recovery_s:
            self._state = CircuitState.HALF_OPEN
            self._trial_running = False
            logger.info(f"Routing breaker '{self.name}' HALF_OPEN, trying the oracle again")

    def _open(self):
        self._state = CircuitState.OPEN
        self._opened_at = self.clock.now()
        self._trial_running = False
        logger.warning(
            f"Routing breaker '{self.name}' OPEN after {self._failures} failures; "
            f"straight-line fallback for {self.recovery_s:.0f}s"
        )

    def _acquire(self):
        with self._lock:
            self._maybe_half_open()
            if self._state == CircuitState.OPEN or (
                self._state == CircuitState.HALF_OPEN and self._trial_running
            ):
                wait = self.retry_in()
                hint = f", retry in {wait:.0f}s" if wait is not None else ""
                raise CircuitOpenError(f"Routing breaker '{self.name}' is {self._state.name}{hint}")
            if self._state == CircuitState.HALF_OPEN:
                self._trial_running = True

    def record_success(self):
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.info(f"Routing breaker '{self.name}' CLOSED, oracle answering again")
            self._state = CircuitState.CLOSED
            self._failures = 0
            self._opened_at = None
            self._trial_running = False

    def record_failure(self, error: Exception):
        with self._lock:
            self._failures += 1
            logger.warning(f"Routing breaker '{self.name}' recorded failure: {error}")
            if self._state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
                self._open()

    def reset(self):
        """Force the breaker back to CLOSED."""
        self.record_success()

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            self._acquire()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                self.record_failure(e)
                raise
            self.record_success()
            return result

        return wrapper

    def get_status(self) -> dict:
        """Breaker summary for /api/health."""
        with self._lock:
            self._maybe_half_open()
            return {
                'state': self._state.value,
                'failures': self._failures,
                'retry_in_s': self.retry_in(),
            }


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 0.5,
    max_wait: float = 5.0,
    exceptions: tuple = (OSError,),
    clock: Optional[Clock] = None,
):
    """
    Retry a lookup with exponential backoff.

    Args:
        max_attempts: Attempts before the last error is re-raised
        min_wait: First backoff (seconds)
        max_wait: Backoff ceiling (seconds)
        exceptions: Exception types worth retrying
        clock: Clock whose ``sleep`` waits between attempts
    """
    sleep = (clock or SystemClock()).sleep

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        return retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=min_wait or 1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )(func)

    return decorator


# Breakers reported by /api/health
_breakers: dict[str, CircuitBreaker] = {}


def register_circuit_breaker(breaker: CircuitBreaker):
    _breakers[breaker.name] = breaker


def get_all_circuit_breaker_status() -> dict:
    return {name: breaker.get_status() for name, breaker in _breakers.items()}


routing_breaker = CircuitBreaker(
    name="routing_oracle",
    failure_threshold=settings.routing_failure_threshold,
    recovery_s=settings.routing_recovery_s,
)

register_circuit_breaker(routing_breaker)
