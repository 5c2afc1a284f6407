"""
Playback Engine.

A small state machine (stopped / playing / paused) with a clock-driven
progress integrator. Progress runs from 0 to 1 across the whole route;
at speed 1.0 a full pass takes ``duration`` seconds. Reaching the end
rewinds to the stopped state instead of freezing on the last frame.
"""

import math
import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

from routeanim.config import MAX_ANIMATION_DURATION_S, MIN_ANIMATION_DURATION_S, settings

logger = logging.getLogger(__name__)


class PlaybackStatus(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class AnimationState:
    """Snapshot of playback state."""
    is_playing: bool = False
    is_paused: bool = False
    current_progress: float = 0.0       # 0..1 over the whole route
    current_segment_index: int = 0
    segment_progress: float = 0.0       # 0..1 within the current segment
    speed: float = 1.0                  # playback multiplier
    duration: float = 20.0              # seconds for a full pass at speed 1.0

    @property
    def status(self) -> PlaybackStatus:
        if self.is_playing:
            return PlaybackStatus.PLAYING
        if self.is_paused:
            return PlaybackStatus.PAUSED
        return PlaybackStatus.STOPPED

    @property
    def rate(self) -> float:
        """Progress per second at speed 1.0."""
        return 1.0 / self.duration


def clamp_duration(seconds: float) -> float:
    return min(max(float(seconds), MIN_ANIMATION_DURATION_S), MAX_ANIMATION_DURATION_S)


def segment_position(progress: float, segment_count: int) -> Tuple[int, float]:
    """
    Split overall progress into (segment index, progress within segment).

    The index is capped at the last segment, so progress 1.0 maps to the
    end of the last segment rather than the start of a missing one.
    """
    scaled = progress * segment_count
    index = min(int(math.floor(scaled)), segment_count - 1)
    return index, min(max(scaled - index, 0.0), 1.0)


class PlaybackEngine:
    """
    Thread-safe playback state machine.

    Args:
        segment_count: Callable returning the current number of route segments
        duration: Seconds for a full pass at speed 1.0 (clamped to [5, 30])
        speed: Initial playback multiplier
        lock: Lock shared with the Route Model, if any
    """

    def __init__(
        self,
        segment_count: Callable[[], int],
        duration: Optional[float] = None,
        speed: Optional[float] = None,
        lock: Optional[threading.RLock] = None,
    ):
        self._segment_count = segment_count
        self._lock = lock if lock is not None else threading.RLock()
        self._state = AnimationState(
            speed=speed if speed is not None else settings.default_speed,
            duration=clamp_duration(duration if duration is not None else settings.animation_duration_s),
        )
        self._completions = 0
        self._completion_listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def state(self) -> AnimationState:
        with self._lock:
            return self._state

    def snapshot(self) -> AnimationState:
        """Consistent copy of the current state."""
        return self.state

    @property
    def status(self) -> PlaybackStatus:
        return self.state.status

    @property
    def completions(self) -> int:
        """Number of times playback ran to the end and rewound."""
        with self._lock:
            return self._completions

    def add_completion_listener(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._completion_listeners.append(callback)

    def remove_completion_listener(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._completion_listeners:
                self._completion_listeners.remove(callback)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _rewound(self, state: AnimationState) -> AnimationState:
        return replace(
            state,
            is_playing=False,
            is_paused=False,
            current_progress=0.0,
            current_segment_index=0,
            segment_progress=0.0,
        )

    def play(self) -> None:
        """Stopped or Paused -> Playing."""
        with self._lock:
            if self._state.is_playing:
                return
            self._state = replace(self._state, is_playing=True, is_paused=False)
        logger.debug("Playback started")

    def pause(self) -> None:
        """Playing -> Paused."""
        with self._lock:
            if not self._state.is_playing:
                return
            self._state = replace(self._state, is_playing=False, is_paused=True)
        logger.debug("Playback paused")

    def stop(self) -> None:
        """Any state -> Stopped at progress 0. Speed and duration are kept."""
        with self._lock:
            self._state = self._rewound(self._state)
        logger.debug("Playback stopped")

    def reset(self) -> None:
        """Rewind after the route structure changed."""
        with self._lock:
            if self._state == self._rewound(self._state):
                return
            self._state = self._rewound(self._state)
        logger.info("Playback reset after route change")

    def set_speed(self, speed: float) -> None:
        speed = float(speed)
        if not (math.isfinite(speed) and speed > 0):
            raise ValueError(f"Playback speed must be positive, got {speed}")
        with self._lock:
            self._state = replace(self._state, speed=speed)

    def set_duration(self, seconds: float) -> None:
        """Set the full-pass duration; values outside [5, 30] s are clamped."""
        seconds = float(seconds)
        if not math.isfinite(seconds):
            raise ValueError(f"Duration must be finite, got {seconds}")
        with self._lock:
            self._state = replace(self._state, duration=clamp_duration(seconds))

    def _apply_progress(self, progress: float, segment_count: int) -> None:
        index, within = segment_position(progress, segment_count)
        self._state = replace(
            self._state,
            current_progress=progress,
            current_segment_index=index,
            segment_progress=within,
        )

    def scrub(self, progress: float) -> None:
        """
        Jump to an overall progress in [0, 1].

        Leaves playing/paused flags alone. Does nothing when the route has
        no segments.
        """
        progress = float(progress)
        if math.isnan(progress):
            return
        progress = min(max(progress, 0.0), 1.0)

        with self._lock:
            count = self._segment_count()
            if count <= 0:
                return
            self._apply_progress(progress, count)

    def tick(self, delta_ms: float) -> None:
        """
        Advance playback by elapsed wall time.

        Args:
            delta_ms: Milliseconds since the previous tick
        """
        if not delta_ms > 0:
            return

        with self._lock:
            state = self._state
            if not state.is_playing:
                return
            count = self._segment_count()
            if count <= 0:
                return

            progress = state.current_progress + (delta_ms / 1000.0) * state.rate * state.speed
            if progress < 1.0:
                self._apply_progress(progress, count)
                return

            self._state = self._rewound(state)
            self._completions += 1
            listeners = list(self._completion_listeners)

        logger.info("Playback reached the end of the route, rewinding")
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Completion listener {listener!r} failed: {e}")
